from chat_relay.decoder import extract_delta


def test_extracts_content_from_data_line():
    line = 'data: {"choices":[{"delta":{"content":"Hello"}}]}'
    assert extract_delta(line) == "Hello"


def test_works_without_data_prefix():
    assert extract_delta('{"choices":[{"delta":{"content":"X"}}]}') == "X"


def test_done_sentinel_and_blank_lines_have_no_content():
    assert extract_delta("data: [DONE]") is None
    assert extract_delta("") is None
    assert extract_delta("data: ") is None
    assert extract_delta("   ") is None


def test_missing_markers_have_no_content():
    assert extract_delta('data: {"choices":[{"message":{"content":"x"}}]}') is None
    assert extract_delta('data: {"choices":[{"delta":{"role":"assistant"}}]}') is None
    assert extract_delta(": OPENROUTER PROCESSING") is None


def test_unterminated_value_has_no_content():
    assert extract_delta('data: {"choices":[{"delta":{"content":"abc') is None


def test_escape_sequences_are_unescaped():
    line = r'data: {"choices":[{"delta":{"content":"a\nb\tc \"q\" d\\e"}}]}'
    assert extract_delta(line) == 'a\nb\tc "q" d\\e'


def test_spaces_in_content_are_kept():
    line = 'data: {"id":"1","choices":[{"index":0,"delta":{"content":" there"},"finish_reason":null}]}'
    assert extract_delta(line) == " there"


def test_empty_content_value():
    assert extract_delta('data: {"choices":[{"delta":{"content":""}}]}') == ""


def test_non_string_input_never_raises():
    assert extract_delta(None) is None  # type: ignore[arg-type]
