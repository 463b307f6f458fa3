import json
from collections import Counter

import pytest

from lottery import (
    DEFAULT_PRIZES,
    EmptyCatalog,
    PrizeSpec,
    ensure_default_files,
    expand_pool,
    load_config,
    load_prizes,
    parse_prize_entries,
)


def make_catalog(count):
    return [PrizeSpec(id=index + 1, name=f"Prize {index + 1}", color="#45B7D1") for index in range(count)]


def test_five_prizes_fill_sixty_slots_twelve_times_each():
    catalog = make_catalog(5)
    pool = expand_pool(catalog, 60)

    assert len(pool) == 60
    counts = Counter(entry.source_id for entry in pool)
    assert set(counts.values()) == {12}
    for prize in catalog:
        duplicates = sorted(entry.duplicate_index for entry in pool if entry.source_id == prize.id)
        assert duplicates == list(range(12))
    for start in range(0, 60, 5):
        assert [entry.source_id for entry in pool[start:start + 5]] == [1, 2, 3, 4, 5]


@pytest.mark.parametrize("catalog_size,pool_length", [(1, 1), (1, 60), (3, 30), (7, 60), (60, 60), (80, 30)])
def test_pool_length_and_unique_display_ids(catalog_size, pool_length):
    catalog = make_catalog(catalog_size)
    pool = expand_pool(catalog, pool_length)

    assert len(pool) == pool_length
    assert len({entry.display_id for entry in pool}) == pool_length
    assert [entry.slot_index for entry in pool] == list(range(pool_length))
    minimum = pool_length // catalog_size
    counts = Counter(entry.source_id for entry in pool)
    for prize in catalog[: min(catalog_size, pool_length)]:
        assert counts[prize.id] >= minimum


def test_slot_fields_follow_round_robin():
    catalog = [
        PrizeSpec(id="A", name="Alpha", description="first", color="#FF6B6B", image="a.png"),
        PrizeSpec(id="B", name="Beta", description="second", color="#4ECDC4"),
    ]
    pool = expand_pool(catalog, 5)

    assert [entry.display_id for entry in pool] == ["A-0", "B-0", "A-1", "B-1", "A-2"]
    assert pool[2].name == "Alpha"
    assert pool[2].image == "a.png"
    assert pool[3].description == "second"
    assert pool[4].duplicate_index == 2


def test_expand_is_idempotent():
    catalog = make_catalog(4)
    assert expand_pool(catalog, 30) == expand_pool(catalog, 30)


def test_empty_catalog_is_rejected():
    with pytest.raises(EmptyCatalog):
        expand_pool([], 60)


def test_bad_pool_length_and_duplicate_ids_are_rejected():
    with pytest.raises(ValueError):
        expand_pool(make_catalog(3), 0)
    with pytest.raises(ValueError):
        expand_pool([PrizeSpec(id=1, name="One"), PrizeSpec(id="1", name="Also one")], 10)


def test_parse_prize_entries_validates_entries():
    prizes = parse_prize_entries(
        [
            {"id": 1, "name": " Prize 1 ", "description": "First Prize", "color": "#FF6B6B"},
            {"id": " P2 ", "name": "Prize 2"},
        ]
    )
    assert prizes[0] == PrizeSpec(id=1, name="Prize 1", description="First Prize", color="#FF6B6B")
    assert prizes[1].id == "P2"
    assert prizes[1].color == "#ffffff"

    with pytest.raises(ValueError):
        parse_prize_entries({"id": 1})
    with pytest.raises(ValueError):
        parse_prize_entries([{"id": 1, "name": ""}])
    with pytest.raises(ValueError):
        parse_prize_entries([{"id": 1, "name": "A"}, {"id": "1", "name": "B"}])


def test_default_files_are_written_once(tmp_path):
    config_path = tmp_path / "config.json"
    ensure_default_files(config_path)

    config = load_config(config_path)
    assert config["prizes_file"] == "data/prizes.json"
    assert config["profiles"] == {"full": {}, "compact": {}}
    prizes = load_prizes(tmp_path / "data" / "prizes.json")
    assert [prize.name for prize in prizes] == [entry["name"] for entry in DEFAULT_PRIZES]

    (tmp_path / "data" / "prizes.json").write_text(json.dumps([{"id": "X", "name": "Only"}]), encoding="utf-8")
    ensure_default_files(config_path)
    assert [prize.id for prize in load_prizes(tmp_path / "data" / "prizes.json")] == ["X"]


def test_load_config_fills_missing_keys(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"compact": True}), encoding="utf-8")

    config = load_config(config_path)
    assert config["compact"] is True
    assert config["win_rate"] == 1.0
    assert config["valid_codes"] == []
