from __future__ import annotations
import argparse, os

def parse_param(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {raw!r}")
    return key, value

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Send REST requests through the $batch endpoint")
    p.add_argument("--requests", default="-", help="JSON file with a list of requests ('-' for stdin)")
    p.add_argument("--token", default=os.getenv("GRAPH_ACCESS_TOKEN"))
    p.add_argument("--retries", type=int, default=int(os.getenv("MAX_RETRIES", "6")))
    p.add_argument("--param", dest="params", type=parse_param, action="append", default=[],
                   metavar="KEY=VALUE", help="global query parameter (repeatable)")
    p.add_argument("--group-delay", type=float, default=float(os.getenv("GROUP_DELAY", "0")))
    p.add_argument("--beta", action="store_true")
    p.add_argument("--raw-json", action="store_true")
    p.add_argument("--depth", type=int, default=int(os.getenv("JSON_DEPTH", "20")))
    p.add_argument("--proxy", default=os.getenv("HTTPS_PROXY"))
    p.add_argument("--connect-timeout", type=float, default=float(os.getenv("CONNECT_TIMEOUT", "5")))
    p.add_argument("--read-timeout", type=float, default=float(os.getenv("READ_TIMEOUT", "30")))
    return p

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
