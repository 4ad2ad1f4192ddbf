# MIT License
# Copyright (c) 2025 Hashborn

import argparse
import json
import logging
import os
import sys

from ..blockchain.consensus.difficulty import DifficultyController, difficulty_to_teraflops
from ..fp8.executor import EXECUTORS, execute_ml_operation, get_executor
from ..miner.orchestrator import MiningOrchestrator
from ..observability.metrics import start_metrics_server
from ..protocol.config.params import CURRENT_NETWORK, NETWORKS, get_network
from ..protocol.types.common import NetworkError, ProtocolError
from ..protocol.types.operations import parse_operation
from ..rpc.client import LedgerClient

logger = logging.getLogger(__name__)


def get_node_url(args, config=CURRENT_NETWORK):
    return args.node or os.environ.get("MLCHAIN_NODE", config.rpc_url)


def print_stats(stats):
    print("┌──────────── Mining Stats ────────────┐")
    print(f"│ TeraFLOPS:    {stats.teraflops:>10.4f}             │")
    print(f"│ Hashrate:     {stats.hashrate:>10.2f} ops/s       │")
    print(f"│ Total Ops:    {stats.total_operations:>10}             │")
    print(f"│ Blocks Found: {stats.blocks_found:>10}             │")
    print(f"│ Failed:       {stats.failed_attempts:>10}             │")
    print(f"│ Uptime:       {stats.uptime_seconds:>10}s            │")
    print(f"│ Tokens:       {stats.tokens_earned:>10}             │")
    print("└──────────────────────────────────────┘")


# --- Mine ---
def cmd_mine(args):
    try:
        config = get_network(args.network)
        executor = get_executor(args.backend or config.backend)
    except ProtocolError as e:
        print(f"Error: {e}")
        sys.exit(1)

    url = get_node_url(args, config)
    client = None if args.dry_run else LedgerClient(url)

    initial_difficulty = None
    if client is not None:
        try:
            initial_difficulty = client.get_difficulty()
        except NetworkError as e:
            logger.warning(f"Could not read difficulty from {url}: {e}. Using network default.")
    difficulty = DifficultyController(config, initial_difficulty)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)
        logger.info(f"Metrics exposed on :{args.metrics_port}/metrics")

    logger.info(f"Network: {config.network_id}, node: {url}{' (dry run)' if args.dry_run else ''}")
    logger.info(
        f"Difficulty: {difficulty.current} ({difficulty_to_teraflops(difficulty.current):.2f} TFLOPS)"
    )

    orchestrator = MiningOrchestrator(
        config,
        difficulty,
        executor=executor,
        sink=client,
        timing_source=client,
        threads=args.threads,
        target_teraflops=args.target_teraflops,
    )
    try:
        stats = orchestrator.run(max_attempts=args.attempts, start_nonce=args.start_nonce)
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping miner")
        orchestrator.stop()
        stats = orchestrator.stats
    finally:
        orchestrator.close()
        if client is not None:
            client.close()

    if client is not None and args.address:
        try:
            stats.tokens_earned = client.get_balance(args.address)
        except NetworkError as e:
            logger.warning(f"Could not read balance of {args.address}: {e}")

    print_stats(stats)


# --- Run a single operation ---
def cmd_run_op(args):
    raw = args.operation
    if raw.startswith("@"):
        with open(raw[1:], "r") as f:
            raw = f.read()

    try:
        operation = parse_operation(raw)
        result = execute_ml_operation(operation, get_executor(args.backend))
    except ProtocolError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Operation: {operation}")
    print(result.model_dump_json(indent=2))


# --- Query Commands ---
def cmd_query_status(args):
    client = LedgerClient(get_node_url(args))
    try:
        print(json.dumps(client.get_status(), indent=2))
    except NetworkError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        client.close()


def cmd_query_balance(args):
    client = LedgerClient(get_node_url(args))
    try:
        balance = client.get_balance(args.address)
    except NetworkError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        client.close()
    print(f"Balance: {balance}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="mlchain-miner", description="MLChain FP8 Miner")
    parser.add_argument("--node", help=f"Node URL (default: $MLCHAIN_NODE or {CURRENT_NETWORK.rpc_url})")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Sub-commands")

    # mine
    p_mine = subparsers.add_parser("mine", help="Run the mining loop")
    p_mine.add_argument("--network", default=CURRENT_NETWORK.network_id, choices=list(NETWORKS.keys()))
    p_mine.add_argument("--threads", type=int, help="Kernel worker threads (default: network config)")
    p_mine.add_argument("--backend", choices=list(EXECUTORS.keys()), help="Kernel executor (default: network config)")
    p_mine.add_argument("--target-teraflops", type=float, help="Log when an attempt reaches this rate")
    p_mine.add_argument("--attempts", type=int, help="Stop after N attempts (default: run forever)")
    p_mine.add_argument("--start-nonce", type=int, default=0, help="First nonce")
    p_mine.add_argument("--address", help="Reward address, used to report earned tokens")
    p_mine.add_argument("--metrics-port", type=int, help="Expose Prometheus metrics on this port")
    p_mine.add_argument("--dry-run", action="store_true", help="Do not submit accepted work")

    # run-op
    p_run = subparsers.add_parser("run-op", help="Execute one operation given as JSON (or @file)")
    p_run.add_argument("operation", help='e.g. \'{"kind": "matrix_multiply", "dims": [64, 64, 64], "seed": 1}\'')
    p_run.add_argument("--backend", default="portable", choices=list(EXECUTORS.keys()))

    # query
    p_query = subparsers.add_parser("query", help="Query the ledger node")
    sp_query = p_query.add_subparsers(dest="subcommand")

    sp_query.add_parser("status", help="Node status")

    pq_bal = sp_query.add_parser("balance", help="Get account balance")
    pq_bal.add_argument("address", help="Account address")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )

    if args.command == "mine":
        cmd_mine(args)
    elif args.command == "run-op":
        cmd_run_op(args)
    elif args.command == "query":
        if args.subcommand == "status": cmd_query_status(args)
        elif args.subcommand == "balance": cmd_query_balance(args)
        else: p_query.print_help()
    else:
        parser.print_help()

if __name__ == "__main__":
    main()
