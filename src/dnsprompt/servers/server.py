"""DNS request pipeline: prompt extraction, LLM query, TXT response building.

Brief:
  LLMDNSHandler turns one TXT question into answer records (extract prompt,
  query the model chain, chunk the answer). handle_request() applies it to
  every question of a parsed request and maps failures onto the response
  code, so a per-query failure never escapes as an exception.

Inputs:
  - Parsed dnslib DNSRecord requests.

Outputs:
  - dnslib DNSRecord responses ready to pack and send.
"""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Executor
from typing import List, Optional

from dnslib import QTYPE, RCODE, RR, TXT, DNSHeader, DNSLabel, DNSRecord

from ..chunker import Chunker
from ..llm_client import LLMClient
from ..prompt import extract_prompt, is_txt_query, query_text

logger = logging.getLogger("dnsprompt.server")

TXT_TTL = 300


class LLMDNSHandler:
    """Brief: Resolve a TXT question name into answer records via the LLM.

    Inputs:
      - llm_client: LLMClient (or any object with query(prompt) -> str).
      - chunker: Chunker holding the TXT size limits.
      - ttl: TTL in seconds for generated records (default 300).

    Outputs:
      - LLMDNSHandler instance; stateless beyond its collaborators and safe to
        call from several executor threads at once.
    """

    def __init__(
        self, llm_client: LLMClient, chunker: Chunker, ttl: int = TXT_TTL
    ) -> None:
        self.llm_client = llm_client
        self.chunker = chunker
        self.ttl = int(ttl)

    def process_query(self, qname: DNSLabel) -> List[RR]:
        """Brief: Run extract -> query -> chunk for one question name.

        Inputs:
          - qname: Question name from the request.

        Outputs:
          - List[RR]: One TXT record per chunk (empty for an empty answer).

        Raises:
          - EmptyQueryError, LLMClientError: pipeline failures, mapped to
            SERVFAIL by handle_request().
        """

        raw = query_text(qname)
        logger.debug("Raw query string: %s", raw)
        prompt = extract_prompt(raw)
        logger.debug("Parsed prompt: %s", prompt)

        answer = self.llm_client.query(prompt)
        logger.debug("LLM response length: %d", len(answer))

        chunk_set = self.chunker.chunk(answer)
        if chunk_set.truncated:
            logger.info(
                "Answer for '%s' truncated from %d to %d bytes",
                prompt,
                chunk_set.original_size,
                chunk_set.total_size,
            )
        logger.debug("Chunked into %d parts", len(chunk_set))

        records = self.make_records(qname, chunk_set.chunks)
        logger.info(
            "Successfully processed query '%s': %d chunks", prompt, len(records)
        )
        return records

    def make_records(self, qname: DNSLabel, chunks) -> List[RR]:
        records = []
        for index, chunk in enumerate(chunks):
            records.append(
                RR(rname=qname, rtype=QTYPE.TXT, ttl=self.ttl, rdata=TXT(chunk))
            )
            logger.debug("Created TXT record %d: %d bytes", index + 1, len(chunk))
        return records


def make_response(request: DNSRecord) -> DNSRecord:
    """Brief: Create an empty authoritative reply mirroring the request header.

    Inputs:
      - request: Parsed DNS request.

    Outputs:
      - DNSRecord: qr=1, aa=1, ra=0, same id/opcode/rd, questions copied.
    """

    header = DNSHeader(
        id=request.header.id,
        qr=1,
        opcode=request.header.opcode,
        aa=1,
        rd=request.header.rd,
        ra=0,
    )
    return DNSRecord(header, questions=list(request.questions))


async def handle_request(
    request: DNSRecord,
    handler: LLMDNSHandler,
    *,
    executor: Optional[Executor] = None,
) -> DNSRecord:
    """Brief: Build the response for every question in request.

    Inputs:
      - request: Parsed DNS request.
      - handler: LLMDNSHandler used for TXT questions.
      - executor: Optional executor for the blocking pipeline (default loop
        executor when None).

    Outputs:
      - DNSRecord response. The rcode is one message-level field: NOTIMP for a
        non-TXT question, SERVFAIL for a failed TXT question, NOERROR when
        nothing failed. With several questions the last assignment wins.
    """

    loop = asyncio.get_running_loop()
    response = make_response(request)
    rcode = RCODE.NOERROR

    for question in request.questions:
        qname = question.qname
        qtype = question.qtype
        qtype_name = QTYPE.get(qtype, str(qtype))
        logger.debug("Processing query: %s %s", qname, qtype_name)

        if not is_txt_query(qtype):
            logger.warning("Unsupported query type %s for %s", qtype_name, qname)
            rcode = RCODE.NOTIMP
            continue

        try:
            records = await loop.run_in_executor(
                executor, handler.process_query, qname
            )
        except Exception as e:
            logger.warning("Failed to process query for %s: %s", qname, e)
            rcode = RCODE.SERVFAIL
            continue

        logger.debug("Adding %d answer records", len(records))
        for record in records:
            response.add_answer(record)

    response.header.rcode = rcode
    return response
