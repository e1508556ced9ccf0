from __future__ import annotations

from backend.mcp.result_parser import (
    extract_next_page_token,
    extract_places_from_text,
    extract_status_code,
    parse_json_from_text,
    parse_tool_result,
    resolve_payload,
)


def test_json_content_item_wins():
    result = {"content": [{"type": "text", "text": "ignored"}, {"type": "json", "json": {"places": [{"id": "a"}]}}]}

    payload, text = resolve_payload(result)

    assert payload == {"places": [{"id": "a"}]}
    assert text is None


def test_json_embedded_in_text_items():
    result = {"content": [{"type": "text", "text": 'Result:\n{"data": {"results": [{"place_id": "x", "name": "Aung"}]}}'}]}

    parsed = parse_tool_result(result)

    assert parsed.places == [{"place_id": "x", "name": "Aung"}]
    assert parsed.successful is None


def test_composio_style_payload():
    result = {"content": [{"type": "text", "text": '{"successful": true, "error": null, "data": {"places": [{"id": "p1"}], "nextPageToken": "n2"}}'}]}

    parsed = parse_tool_result(result)

    assert parsed.successful is True
    assert parsed.error is None
    assert [p["id"] for p in parsed.places] == ["p1"]
    assert extract_next_page_token(parsed.payload) == "n2"


def test_failed_payload_surfaces_error():
    result = {"content": [{"type": "json", "json": {"successfull": False, "error": "Invalid place type(s) for includedTypes"}}]}

    parsed = parse_tool_result(result)

    assert parsed.successful is False
    assert parsed.error == "Invalid place type(s) for includedTypes"
    assert parsed.places == []


def test_is_error_flag_forces_failure():
    result = {"isError": True, "content": [{"type": "text", "text": "Tool execution failed: HTTP 400"}]}

    parsed = parse_tool_result(result)

    assert parsed.successful is False
    assert parsed.error == "Tool execution failed: HTTP 400"


def test_numbered_text_lines_fallback():
    text = (
        "Top picks:\n"
        "1. Rangoon Tea House - Address: 77 Pansodan St, Rating: 4.6, https://maps.google.com/?cid=1\n"
        "2. Feel Myanmar Food (Bahan)\n"
    )

    places = extract_places_from_text(text)

    assert places[0] == {
        "name": "Rangoon Tea House",
        "address": "77 Pansodan St",
        "rating": 4.6,
        "mapsUrl": "https://maps.google.com/?cid=1",
    }
    assert places[1] == {"name": "Feel Myanmar Food"}
    assert len(places) == 2


def test_parse_json_from_text_variants():
    assert parse_json_from_text('  {"a": 1} ') == {"a": 1}
    assert parse_json_from_text('prefix {"a": [1]} suffix') == {"a": [1]}
    assert parse_json_from_text("see [1, 2] here") == [1, 2]
    assert parse_json_from_text("nothing here") is None
    assert parse_json_from_text("") is None


def test_status_code_sniffing():
    assert extract_status_code({"statusCode": 400}) == 400
    assert extract_status_code({"error": {"code": "400"}}) == 400
    assert extract_status_code({"response": {"status_code": 404}}) == 404
    assert extract_status_code({"message": "boom"}) is None
    assert extract_status_code("400") is None


def test_next_page_token_variants():
    assert extract_next_page_token({"next_page_token": "a"}) == "a"
    assert extract_next_page_token({"data": {"pageToken": "b"}}) == "b"
    assert extract_next_page_token({"nextPageToken": ""}) is None
    assert extract_next_page_token([]) is None


def test_non_dict_result_is_tolerated():
    parsed = parse_tool_result("plain string")

    assert parsed.places == []
    assert parsed.successful is None
