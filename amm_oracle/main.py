#!/usr/bin/env python3
"""AMM Price Oracle.

Serves reconciled token pair prices (fresh external feeds preferred over
pool spot prices), TWAP observations and PoolManager protocol fee
administration through a single operation interface.

Runs one operation per invocation and prints its JSON envelope on stdout.
Configuration comes from env vars; CLI args take precedence.
"""

import argparse
import json
import logging
import sys

from .src.OracleApi import OracleApi
from .src.OracleConfig import OracleConfig, parse_address_list
from .src.OracleService import OracleService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def parse_params(params_str: str | None) -> dict:
    """Parse the JSON request parameters of an operation.

    :param params_str: JSON object string, or "@path" to read it from a file.
    :returns: Parameters dict (empty when not given).
    :raises ValueError: If the value is not a JSON object.
    """
    if not params_str:
        return {}
    if params_str.startswith("@"):
        with open(params_str[1:], encoding="utf-8") as f:
            params_str = f.read()
    params = json.loads(params_str)
    if not isinstance(params, dict):
        raise ValueError("--params must be a JSON object")
    return params


def main() -> None:
    """Main entry point for the AMM Price Oracle CLI."""
    operations = OracleApi.available_operations()

    parser = argparse.ArgumentParser(
        description="AMM Price Oracle: Reconciled prices and protocol fee administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available operations:
  {', '.join(operations)}

Examples:
  # Reconciled price of a pair
  python -m amm_oracle.main get-price \\
      --params '{{"tokenA": "0xA0b8...", "tokenB": "0xC02a..."}}'

  # Feed an external price
  python -m amm_oracle.main feed \\
      --params '{{"signingKey": "0x...", "tokenA": "0x...", "tokenB": "0x...", "price": "1.05"}}'

  # Collect all accrued protocol fees of a token
  python -m amm_oracle.main collect-fees --params @collect.json

Environment variables (CLI args take precedence):
  RPC_URL, POOL_MANAGER_ADDRESS, STATE_VIEW_ADDRESS, PRICE_ORACLE_ADDRESS,
  ADMIN_ADDRESS, AUTHORIZED_FEEDERS, ADMIN_IS_FEEDER, DEFAULT_FEE,
  DEFAULT_TICK_SPACING, MAX_PRICE_AGE, TWAP_WINDOW, RPC_TIMEOUT, TX_TIMEOUT,
  MAX_RETRIES
""",
    )

    parser.add_argument(
        "operation",
        type=str,
        help=f"Operation to run. Available: {', '.join(operations)}",
    )

    parser.add_argument(
        "--params",
        type=str,
        help="Operation parameters as a JSON object, or @file to read them from a file",
        default=None,
    )

    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="JSON-RPC endpoint (default: http://localhost:8545)",
        default=None,
    )

    parser.add_argument(
        "--pool-manager-address",
        dest="pool_manager_address",
        type=str,
        help="Address of the PoolManager contract",
        default=None,
    )

    parser.add_argument(
        "--state-view-address",
        dest="state_view_address",
        type=str,
        help="Address of the StateView contract",
        default=None,
    )

    parser.add_argument(
        "--price-oracle-address",
        dest="price_oracle_address",
        type=str,
        help="Address of the PriceOracle (TWAP) contract",
        default=None,
    )

    parser.add_argument(
        "--admin-address",
        dest="admin_address",
        type=str,
        help="Oracle admin address",
        default=None,
    )

    parser.add_argument(
        "--feeders",
        type=str,
        help="Comma-separated authorized feeder addresses",
        default=None,
    )

    parser.add_argument(
        "--max-price-age",
        dest="max_price_age",
        type=int,
        help="Seconds after which an external price is stale (default: 3600)",
        default=None,
    )

    parser.add_argument(
        "--twap-window",
        dest="twap_window",
        type=int,
        help="TWAP window in seconds (default: 1800)",
        default=None,
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.operation not in operations:
        parser.error(
            f"Unknown operation: {args.operation}. Available: {', '.join(operations)}"
        )

    try:
        params = parse_params(args.params)
    except (OSError, ValueError) as e:
        parser.error(f"Invalid --params: {e}")

    try:
        config = OracleConfig.from_env(
            rpc_url=args.rpc_url,
            pool_manager_address=args.pool_manager_address,
            state_view_address=args.state_view_address,
            price_oracle_address=args.price_oracle_address,
            admin_address=args.admin_address,
            authorized_feeders=parse_address_list(args.feeders) if args.feeders else None,
            max_price_age_seconds=args.max_price_age,
            twap_window_seconds=args.twap_window,
        )
    except ValueError as e:
        parser.error(str(e))

    # Log configuration
    logger.info("=" * 60)
    logger.info("AMM Price Oracle")
    logger.info("=" * 60)
    logger.info(f"RPC URL:           {config.rpc_url}")
    logger.info(f"PoolManager:       {config.pool_manager_address or 'not configured'}")
    logger.info(f"StateView:         {config.state_view_address or 'not configured'}")
    logger.info(f"PriceOracle:       {config.price_oracle_address or 'not configured'}")
    logger.info(f"Admin:             {config.admin_address}")
    logger.info(f"Feeders:           {len(config.authorized_feeders)}")
    logger.info(f"Max Price Age:     {config.max_price_age_seconds}s")
    logger.info(f"TWAP Window:       {config.twap_window_seconds}s")
    logger.info("=" * 60)

    try:
        api = OracleApi(OracleService.from_config(config))
        response = api.handle(args.operation, params)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    print(json.dumps(response, indent=2, default=str))
    if not response["success"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
