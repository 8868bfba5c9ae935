from activity_engine.adapters.csv_fields import escape_field, iter_records, join_fields, parse_line


def test_escape_field_quotes_only_when_needed():
    assert escape_field("Copper Ore") == "Copper Ore"
    assert escape_field("1,200") == '"1,200"'
    assert escape_field('say "hi"') == '"say ""hi"""'
    assert escape_field("") == ""
    assert escape_field(None) == ""


def test_parse_line_splits_two_tricky_fields():
    pairs = [
        ("a,b", 'c"d'),
        ('"quoted"', "line\nbreak"),
        (",,,", '""'),
        ("plain", ""),
    ]
    for s, t in pairs:
        assert parse_line(escape_field(s) + "," + escape_field(t)) == [s, t]


def test_parse_line_round_trips_joined_fields():
    fields = ["2025-01-01T00:00:00.000Z", '{"a":1,"b":"x"}', "2 Gold;1 Rope", "", "x\r\ny"]
    assert parse_line(join_fields(fields)) == fields


def test_parse_line_never_raises_on_stray_quotes():
    assert parse_line('a,"unterminated') == ["a", "unterminated"]
    assert parse_line('a,b"c') == ["a", 'b"c']
    assert parse_line("") == [""]


def test_iter_records_keeps_quoted_newlines_in_one_record():
    text = 'h1,h2\na,"multi\nline"\n\nb,c\n'
    assert list(iter_records(text)) == [["h1", "h2"], ["a", "multi\nline"], ["b", "c"]]
