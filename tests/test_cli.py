import json

import pytest

from lottery import main


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    (tmp_path / "prizes.json").write_text(
        json.dumps(
            [
                {"id": 1, "name": "Mug", "color": "#FF6B6B"},
                {"id": 2, "name": "Bag", "color": "#4ECDC4"},
                {"id": 3, "name": "Pen", "color": "#45B7D1"},
            ]
        ),
        encoding="utf-8",
    )
    path.write_text(
        json.dumps({"prizes_file": "prizes.json", "valid_codes": ["GOOD", "ALSO"], "win_rate": 1.0}),
        encoding="utf-8",
    )
    return path


def test_pool_command_lists_every_slot(config_path, capsys):
    main(["--config", str(config_path), "pool"])
    lines = capsys.readouterr().out.splitlines()

    assert len(lines) == 60
    assert lines[0] == "  0 | 1-0 | Mug"
    assert lines[59] == " 59 | 3-19 | Pen"


def test_compact_pool_is_shorter(config_path, capsys):
    main(["--config", str(config_path), "--compact", "pool"])
    assert len(capsys.readouterr().out.splitlines()) == 30


def test_layout_command_prints_positions(config_path, capsys):
    main(["--config", str(config_path), "layout"])
    lines = capsys.readouterr().out.splitlines()

    assert len(lines) == 60
    assert lines[0].startswith("  0 | x=")
    assert "y=  280.000" in lines[0]


def test_spin_command_settles_on_the_won_prize(config_path, capsys):
    main(["--config", str(config_path), "--seed", "4", "spin", "--code", "GOOD"])
    lines = capsys.readouterr().out.splitlines()

    assert lines[0] == "Congratulations! You've won a prize!"
    assert lines[1].startswith("- slot ")
    slot = int(lines[1].split()[2])
    assert slot in {0, 1, 2}
    assert "ticks" in lines[1]


def test_spin_command_reports_a_rejected_code(config_path):
    with pytest.raises(SystemExit, match="Invalid code: BAD"):
        main(["--config", str(config_path), "spin", "--code", "BAD"])


def test_missing_config_is_created(tmp_path, capsys):
    config_path = tmp_path / "fresh" / "config.json"
    main(["--config", str(config_path), "pool"])

    assert config_path.exists()
    assert (tmp_path / "fresh" / "data" / "prizes.json").exists()
    assert len(capsys.readouterr().out.splitlines()) == 60
