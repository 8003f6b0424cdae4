from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import List, Optional

from .chunker import Chunker
from .config.config_parser import load_config, mask_api_key
from .config.config_schema import ConfigError, ServerConfig
from .config.logging_config import init_logging
from .llm_client import LLMClient, LLMClientError
from .servers.server import LLMDNSHandler
from .servers.udp_server import DNSUDPServer

EXAMPLE_PROMPTS = ("hello world", "what is rust", "explain quantum computing")


def build_server(cfg: ServerConfig) -> DNSUDPServer:
    """
    Brief: Wire the LLM client, chunker and handler into a UDP server.

    Inputs:
      - cfg: Validated ServerConfig.

    Outputs:
      - DNSUDPServer (not yet bound).

    Raises:
      - InvalidConfigurationError: empty API key or model list.
    """
    client = LLMClient(
        cfg.api_key,
        cfg.models,
        cfg.system_prompt,
        api_url=cfg.api_url,
        sampling=cfg.sampling,
    )
    chunker = Chunker(cfg.max_chunk_size, cfg.max_total_size)
    handler = LLMDNSHandler(client, chunker)
    return DNSUDPServer(
        cfg.host, cfg.port, handler, max_concurrent=cfg.max_concurrent
    )


def _log_banner(logger: logging.Logger, cfg: ServerConfig) -> None:
    logger.info("=== Configuration ===")
    logger.info("Provider: %s", cfg.api_url)
    logger.info("API Key: %s...*** (masked)", mask_api_key(cfg.api_key))
    logger.info("Models (with fallback): %s", ", ".join(cfg.models))
    logger.info("DNS Server: %s", cfg.bind_address)
    logger.info(
        "Chunker: max chunk %d bytes, max total %d bytes",
        cfg.max_chunk_size,
        cfg.max_total_size,
    )
    if cfg.max_concurrent:
        logger.info("Max concurrent queries: %d", cfg.max_concurrent)
    logger.info("=== Example Queries ===")
    for prompt in EXAMPLE_PROMPTS:
        logger.info("  dig @%s -p %d '%s' TXT +time=30", cfg.host, cfg.port, prompt)
    logger.info("Tip: LLM calls can take 5-15 seconds; raise dig's +time accordingly")


def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop, server: DNSUDPServer
) -> None:
    logger = logging.getLogger("dnsprompt.main")

    def _request_shutdown(sig_label: str) -> None:
        logger.info("Received %s, initiating shutdown", sig_label)
        server.shutdown()

    for sig in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None)):
        if sig is None:
            continue
        try:
            loop.add_signal_handler(sig, _request_shutdown, sig.name)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows event loops or non-main threads
            logger.warning("Could not install %s handler on this platform", sig.name)


async def run_server(server: DNSUDPServer) -> None:
    """Bind, install signal handlers and serve until shutdown."""
    server.bind()
    _install_signal_handlers(asyncio.get_running_loop(), server)
    logging.getLogger("dnsprompt.main").info("Server ready; press Ctrl+C to stop")
    await server.serve()


def main(argv: List[str] | None = None) -> int:
    """
    Main entry point for the DNS server.
    Parses arguments, loads configuration, initializes logging and serves.

    Args:
        argv: Command-line arguments.

    Returns:
        An exit code: 0 on clean shutdown, 1 on configuration or bind failure.

    Example use:
        CLI:
            OPENROUTER_API_KEY=sk-... dnsprompt --port 5353
            dig @127.0.0.1 -p 5353 'what is rust' TXT +time=30
    """
    parser = argparse.ArgumentParser(
        description="Answer DNS TXT queries with a chat-completion LLM"
    )
    parser.add_argument("--config", default=None, help="Path to optional YAML config")
    parser.add_argument("--host", default=None, help="Listen address (overrides HOST)")
    parser.add_argument(
        "--port", type=int, default=None, help="Listen port (overrides PORT)"
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["debug", "info", "warn", "error", "crit"],
        help="Log level (overrides LOG_LEVEL)",
    )
    args = parser.parse_args(argv)

    overrides = {"host": args.host, "port": args.port}
    if args.log_level:
        overrides["logging"] = {"level": args.log_level}

    try:
        cfg = load_config(args.config, overrides=overrides)
    except ConfigError as exc:
        print(f"Failed to load configuration: {exc}")
        return 1

    init_logging(cfg.logging)
    logger = logging.getLogger("dnsprompt.main")
    logger.info("Starting LLM over DNS server...")
    if args.config:
        logger.info("Loaded config from %s", args.config)

    try:
        server = build_server(cfg)
    except LLMClientError as exc:
        logger.error("Failed to create LLM client: %s", exc)
        return 1

    _log_banner(logger, cfg)

    try:
        asyncio.run(run_server(server))
    except (OSError, ValueError) as exc:
        logger.error("Failed to bind DNS server on %s: %s", cfg.bind_address, exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
        server.shutdown()

    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())  # pragma: no cover
