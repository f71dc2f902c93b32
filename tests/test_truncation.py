import pytest

from services.truncation import split_csv_rows, truncate_csv_content


def _quotes_balanced(text: str) -> bool:
    return text.count('"') % 2 == 0


def test_content_under_budget_is_unchanged():
    content = "header1,header2\nvalue1,value2"

    assert truncate_csv_content(content, 100) == (content, False)


def test_content_exactly_at_budget_is_unchanged():
    content = "a,b\n1,2"

    assert truncate_csv_content(content, len(content)) == (content, False)


def test_drops_rows_past_budget():
    assert truncate_csv_content("a,b\n1,2\n3,4", 7) == ("a,b\n1,2", True)


def test_keeps_header_when_it_alone_exceeds_budget():
    header = "header1,header2"
    content = f"{header}\nvalue1,value2"

    assert truncate_csv_content(content, len(header) - 1) == (header, True)


def test_oversized_single_row_reports_truncation():
    assert truncate_csv_content("abcdef", 3) == ("abcdef", True)


def test_quoted_newlines_stay_in_one_row():
    header = "id,name,description"
    row1 = '1,Project A,"This is a description\nwith a newline"'
    row2 = '2,Project B,"Another\nmulti-line\ndescription"'
    content = f"{header}\n{row1}\n{row2}"

    truncated, was_truncated = truncate_csv_content(content, len(header) + len(row1) + 2)

    assert truncated == f"{header}\n{row1}"
    assert was_truncated


def test_escaped_quotes_do_not_toggle_state():
    header = "id,text"
    row1 = '1,"Text with ""quoted"" content"'
    row2 = "2,Regular text"
    content = f"{header}\n{row1}\n{row2}"

    truncated, was_truncated = truncate_csv_content(content, len(header) + len(row1) + 2)

    assert truncated == f"{header}\n{row1}"
    assert was_truncated


def test_never_emits_part_of_a_multiline_row():
    header = "id,name,builders"
    row1 = '1,Project A,"Person A\nPerson B"'
    content = f'{header}\n{row1}\n2,Project B,"Person C"'

    truncated, was_truncated = truncate_csv_content(content, len(header) + 10)

    assert truncated == header
    assert was_truncated


def test_real_world_multiline_names_keep_quotes_balanced():
    header = "id,Name,Industry,PM-T/PM"
    row1 = 'IB-RCH-005,GenAI Agent Workflow,RCH,"Su, Fan"'
    row2 = 'IB-MFG-007,Agentic Smart Devices Assistant,MFG,"Li, Xiujuan,\nYan Yi (0.5)\nHan, Xu (0.5)"'
    content = f"{header}\n{row1}\n{row2}"

    truncated, was_truncated = truncate_csv_content(content, len(header) + len(row1) + 2)

    assert truncated == f"{header}\n{row1}"
    assert was_truncated
    assert _quotes_balanced(truncated)


@pytest.mark.parametrize("max_size", [0, 5, 12, 20, 33, 47, 60, 80])
def test_output_within_budget_or_header_only(max_size):
    header = 'id,"note"'
    rows = ['1,"a\nb"', '2,"say ""hi"""', "3,plain", '4,"x,\ny\nz"']
    content = "\n".join([header] + rows)

    truncated, _ = truncate_csv_content(content, max_size)

    assert len(truncated.encode("utf-8")) <= max_size or truncated == header
    assert _quotes_balanced(truncated)
    assert truncated == "\n".join([header] + rows[:len(split_csv_rows(truncated)) - 1])


def test_budget_counts_utf8_bytes():
    content = "name\nété\nnaïve"  # "été" is 5 bytes, 3 characters

    truncated, was_truncated = truncate_csv_content(content, 9)

    assert truncated == "name"
    assert was_truncated
    assert truncate_csv_content(content, 10) == ("name\nété", True)


def test_unterminated_quote_runs_to_end():
    assert split_csv_rows('a,b\n1,"open\n2,3\n4,5') == ["a,b", '1,"open\n2,3\n4,5']


def test_negative_budget_rejected():
    with pytest.raises(ValueError):
        truncate_csv_content("a\nb", -1)
