"""Turn DNS question names into LLM prompts.

The whole query name is the prompt; no label structure or base domain is
imposed. ``dig @server 'what is rust' TXT`` asks the model "what is rust".
"""

from __future__ import annotations

from typing import Union

from dnslib import QTYPE, DNSLabel

NAME_SEPARATOR = "."


class EmptyQueryError(ValueError):
    """
    Brief: Raised when a query name yields no prompt text.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def query_text(qname: Union[DNSLabel, str]) -> str:
    """Brief: Recover the raw query text of a question name.

    Inputs:
      - qname: dnslib DNSLabel (or plain string, returned as-is).

    Outputs:
      - str: Labels decoded as UTF-8 and joined with '.', followed by the
        trailing root separator.

    Notes:
      - str(DNSLabel) escapes spaces and non-ASCII bytes as \\DDD; the model
        should see the text the client typed, so labels are decoded directly.

    Example:
      >>> query_text(DNSLabel("hello"))
      'hello.'
    """

    if isinstance(qname, str):
        return qname
    labels = [label.decode("utf-8", errors="replace") for label in qname.label]
    return NAME_SEPARATOR.join(labels) + NAME_SEPARATOR


def extract_prompt(raw: str) -> str:
    """Brief: Derive the prompt from raw query text.

    Inputs:
      - raw: Query text as presented on the wire, optionally ending in '.'.

    Outputs:
      - str: raw with surrounding whitespace and one trailing '.' removed.
        Case, punctuation and inner whitespace are kept.

    Raises:
      - EmptyQueryError: when nothing remains.

    Example:
      >>> extract_prompt("hello world.")
      'hello world'
    """

    text = raw.strip()
    if text.endswith(NAME_SEPARATOR):
        text = text[: -len(NAME_SEPARATOR)]
    if not text:
        raise EmptyQueryError("Empty query: no text provided")
    return text


def is_txt_query(qtype: int) -> bool:
    return int(qtype) == QTYPE.TXT
