"""
Command-line entrypoint for graph-batch.

- Parses CLI args and config
- Reads the request list (JSON array) from a file or stdin
- Runs the batch and prints the results to stdout:
    * --raw-json: one JSON document, nested to --depth
    * otherwise: one compact JSON line per result entry

Handles transport failures, bad input and KeyboardInterrupt cleanly for user experience.
"""
from __future__ import annotations
import asyncio, json, sys

from http_client import TransportError

from .config import parse_args
from .pipeline import invoke_batch
from .utils import BatchRequestError

def load_requests(source: str) -> list:
    if source == "-":
        data = json.load(sys.stdin)
    else:
        with open(source, encoding="utf-8") as fh:
            data = json.load(fh)
    if isinstance(data, dict) and "requests" in data:
        data = data["requests"]
    if not isinstance(data, list):
        raise BatchRequestError("request file must hold a JSON list of requests")
    return data

async def run(args) -> None:
    requests = load_requests(args.requests)
    print(f"""
        ====== graph-batch ======
        Requests       : {len(requests)}
        Version        : {'beta' if args.beta else 'v1.0'}
        Retries        : {args.retries}
        Group delay    : {args.group_delay}s
        Timeouts (s)   : connect={args.connect_timeout} read={args.read_timeout}
        =========================
    """, file=sys.stderr)
    output, _stats = await invoke_batch(
        args.token,
        requests,
        max_retries=args.retries,
        global_parameters=dict(args.params),
        group_delay=args.group_delay,
        beta=args.beta,
        as_json=args.raw_json,
        depth=args.depth,
        proxy=args.proxy,
        connect_timeout=args.connect_timeout,
        read_timeout=args.read_timeout,
    )
    if isinstance(output, str):
        print(output)
    else:
        for entry in output:
            print(json.dumps(entry, default=str))

def main() -> None:
    args = parse_args()
    if not args.token:
        print("An access token is required (--token or GRAPH_ACCESS_TOKEN).", file=sys.stderr)
        sys.exit(2)
    try:
        asyncio.run(run(args))
    except TransportError as e:
        print(f"Batch call failed: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:  # BatchRequestError or unreadable JSON
        print(f"Invalid requests: {e}", file=sys.stderr)
        sys.exit(2)
    except OSError as e:
        print(f"Cannot read requests: {e}", file=sys.stderr)
        sys.exit(2)
    except KeyboardInterrupt:
        print("Aborted.", file=sys.stderr)
