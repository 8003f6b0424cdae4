"""
Brief: Tests for dnsprompt.prompt query-text extraction and type checks.

Inputs:
  - None

Outputs:
  - None
"""

import pytest
from dnslib import QTYPE, DNSLabel, DNSRecord

from dnsprompt.prompt import EmptyQueryError, extract_prompt, is_txt_query, query_text


def test_extract_strips_trailing_separator():
    assert extract_prompt("hello world.") == "hello world"
    assert extract_prompt("what is rust") == "what is rust"


def test_extract_trims_whitespace_and_preserves_inner_text():
    assert extract_prompt("  Hello, World!  ") == "Hello, World!"
    assert extract_prompt("hello-world.") == "hello-world"
    assert extract_prompt("What  IS   Rust?.") == "What  IS   Rust?"


def test_extract_strips_only_one_separator():
    assert extract_prompt("example.com..") == "example.com."


@pytest.mark.parametrize("raw", [".", "  ", "", " . "])
def test_extract_empty_raises(raw):
    with pytest.raises(EmptyQueryError):
        extract_prompt(raw)


def test_empty_query_is_value_error():
    assert issubclass(EmptyQueryError, ValueError)


def test_is_txt_query():
    assert is_txt_query(16)
    assert is_txt_query(QTYPE.TXT)
    for qtype in (1, 5, 28):
        assert not is_txt_query(qtype)


def test_query_text_keeps_spaces_unescaped():
    """
    Brief: Labels containing spaces reach the prompt verbatim, not as \\032.

    Inputs:
      - DNS question built for the name 'what is rust'

    Outputs:
      - None
    """
    req = DNSRecord.question("what is rust", "TXT")
    parsed = DNSRecord.parse(req.pack())
    raw = query_text(parsed.q.qname)
    assert raw == "what is rust."
    assert extract_prompt(raw) == "what is rust"


def test_query_text_multi_label_and_root():
    assert query_text(DNSLabel("hello.world")) == "hello.world."
    assert query_text(DNSLabel(".")) == "."
    assert query_text("plain.") == "plain."


def test_query_text_decodes_utf8_labels():
    label = DNSLabel([("héllo").encode("utf-8")])
    assert query_text(label) == "héllo."
