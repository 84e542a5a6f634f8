import copy

from evans.migrate import MIGRATION_SCRIPTS, migrate, migrate_0610_to_0611


def _old_config():
    return {
        "meta": {"configVersion": "0.6.10"},
        "request": {
            "header": [
                {"key": "grpc-client", "val": "evans"},
                {"key": "ogiso", "val": "setsuna"},
            ]
        },
        "input": {"promptFormat": "{name} => "},
    }


def test_header_list_becomes_map():
    data = _old_config()
    migrate_0610_to_0611("0.6.10", data)
    assert data["request"]["header"] == {
        "grpc-client": ["evans"],
        "ogiso": ["setsuna"],
    }


def test_returns_updated_version_and_sets_it():
    data = _old_config()
    assert migrate_0610_to_0611("0.6.10", data) == "0.6.11"
    assert data["meta"]["configVersion"] == "0.6.11"


def test_input_prompt_moved_and_input_removed():
    data = _old_config()
    migrate_0610_to_0611("0.6.10", data)
    assert data["repl"]["inputPromptFormat"] == "{name} => "
    assert "input" not in data


def test_missing_header_gives_empty_map():
    data = {"meta": {"configVersion": "0.6.10"}}
    migrate_0610_to_0611("0.6.10", data)
    assert data["request"]["header"] == {}
    assert "repl" not in data


def test_invalid_header_stops_migration():
    data = {"request": {"header": {"grpc-client": ["evans"]}}}
    assert migrate_0610_to_0611("0.6.10", data) == ""
    assert data["meta"]["configVersion"] == "0.6.11"
    assert data["request"]["header"] == {"grpc-client": ["evans"]}


def test_keys_are_case_insensitive():
    data = {
        "meta": {"configversion": "0.6.10"},
        "request": {"header": [{"key": "a", "val": "b"}]},
        "input": {"promptformat": "> "},
    }
    migrate_0610_to_0611("0.6.10", data)
    assert data["meta"] == {"configVersion": "0.6.11"}
    assert data["repl"] == {"inputPromptFormat": "> "}


def test_migrate_applies_all_scripts():
    for old in MIGRATION_SCRIPTS:
        data = _old_config()
        migrate(old, data)
        assert data["meta"]["configVersion"] == "0.6.11"
        assert data["request"]["header"]["grpc-client"] == ["evans"]


def test_migrate_unknown_version_changes_nothing():
    data = _old_config()
    before = copy.deepcopy(data)
    migrate("1.0.0", data)
    assert data == before