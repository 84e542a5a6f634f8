import pytest

from evans.flags import FlagError, Flags, StringToStringSliceValue


@pytest.mark.parametrize(
    "given, expected",
    [
        ("touma=kazusa,touma=youko", '["touma=kazusa,youko"]'),
        ("sawamura='spencer=eriri'", "[sawamura='spencer=eriri']"),
        ("sawamura=spencer=eriri", "[sawamura=spencer=eriri]"),
        ("megumi=kato", "[megumi=kato]"),
        ("yuki=asuna,alice", '["yuki=asuna,alice"]'),
    ],
)
def test_string_to_string_slice_value(given, expected):
    v = StringToStringSliceValue({"ogiso": ["setsuna"]})
    v.set(given)
    assert str(v) == expected


def test_string_to_string_slice_value_requires_key_value():
    v = StringToStringSliceValue({"ogiso": ["setsuna"]})
    with pytest.raises(FlagError, match="must be formatted as key=value"):
        v.set("alice")


def test_first_set_replaces_initial_value():
    v = StringToStringSliceValue({"ogiso": ["setsuna"]})
    v.set("megumi=kato")
    assert v.value == {"megumi": ["kato"]}


def test_later_sets_merge_by_key():
    v = StringToStringSliceValue()
    v.set("a=1")
    v.set("b=2")
    v.set("a=3")
    assert v.value == {"a": ["3"], "b": ["2"]}


def test_quoted_csv_field():
    v = StringToStringSliceValue()
    v.set('"k=a,b",x=y')
    assert v.value == {"k": ["a,b"], "x": ["y"]}
    assert str(v) == '["k=a,b",x=y]'


def test_bare_quote_is_rejected():
    v = StringToStringSliceValue()
    with pytest.raises(FlagError):
        v.set('a=b"c,d=e')


def test_pair_without_equals_in_list_is_rejected():
    v = StringToStringSliceValue()
    with pytest.raises(FlagError, match="c must be formatted"):
        v.set("a=b=x,c")


def test_empty_value_string():
    assert str(StringToStringSliceValue()) == "[]"


def test_type_name():
    assert StringToStringSliceValue().type_name() == "slice of strings"


def test_flags_validate_rejects_cli_and_repl():
    flags = Flags()
    flags.mode.cli = True
    flags.mode.repl = True
    with pytest.raises(FlagError, match="cannot specify both of --cli and --repl"):
        flags.validate()


def test_flags_defaults():
    flags = Flags()
    assert flags.common.port == "50051"
    assert flags.common.header == {}
    assert flags.validate() is None