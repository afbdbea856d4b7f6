"""Sweep runner.

Moves every token balance and a rent-safe share of SOL from the configured
wallet to a destination wallet.

Usage:
    python -m tokensweep.runner --destination <ADDRESS>            # preview
    python -m tokensweep.runner --destination <ADDRESS> --execute  # send

Environment variables:
    DRY_RUN: Use the simulated ledger (default: true)
    SOL_RPC_URL / HELIUS_API_KEY: Ledger endpoints
    KEYPAIR_PATH or KEYPAIR_SECRET: Source wallet key
    DESTINATION_WALLET: Default destination
"""

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from tokensweep.chain import get_balance_index, get_ledger
from tokensweep.config import get_settings
from tokensweep.exceptions import SweepError
from tokensweep.models import CreateSubAccount, NativeTransfer, TokenTransfer, TransferPlan
from tokensweep.pricing import JupiterPriceSource, value_priority
from tokensweep.signing import get_signer
from tokensweep.sweep import SweepOrchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
# httpx logs full request URLs, which carry the Helius API key
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def format_plan(plan: TransferPlan) -> str:
    lines = [f"Batch {plan.batch.index} ({len(plan)} instructions):"]
    for ix in plan.instructions:
        if isinstance(ix, CreateSubAccount):
            lines.append(f"  create  {ix.address} ({ix.mint})")
        elif isinstance(ix, TokenTransfer):
            lines.append(f"  send    {ix.amount} raw of {ix.mint}")
        elif isinstance(ix, NativeTransfer):
            lines.append(f"  send    {ix.lamports} lamports SOL")
    return "\n".join(lines)


async def main() -> int:
    """Main entry point."""
    load_dotenv()
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Sweep all tokens and SOL to a destination wallet")
    parser.add_argument(
        "--destination",
        default=settings.destination_wallet,
        help="Destination wallet (default: DESTINATION_WALLET)",
    )
    parser.add_argument(
        "--source",
        default="",
        help="Source wallet (default: signer public key)",
    )
    parser.add_argument(
        "--by-value",
        action="store_true",
        help="Move highest USD value tokens first (Jupiter prices)",
    )
    parser.add_argument(
        "--execute",
        action="store_true",
        help="Sign and send transactions (default: preview only)",
    )
    args = parser.parse_args()

    if not args.destination:
        print("ERROR: --destination or DESTINATION_WALLET is required")
        return 2

    ledger = get_ledger()
    signer = get_signer()
    source = args.source or signer.public_key
    if not source:
        print("ERROR: --source is required when the signer has no public key")
        return 2

    logger.info(f"Settings: {settings.get_safe_dict()}")

    orchestrator = SweepOrchestrator(
        ledger, ledger, signer, index=get_balance_index(), settings=settings
    )

    priority_key = None
    try:
        if args.by_value:
            tokens = list((await orchestrator.scanner.scan(source)).tokens)
            prices = await JupiterPriceSource(base_url=settings.jupiter_api_url).get_prices(
                t.mint for t in tokens
            )
            priority_key = value_priority(prices)

        if not args.execute:
            plans = await orchestrator.preview(source, args.destination, priority_key)
            if not plans:
                print("Nothing to sweep")
            for plan in plans:
                print(format_plan(plan))
            return 0

        if not await signer.health_check():
            logger.error(f"Signer {signer!r} is not ready")
            return 1

        result = await orchestrator.run(source, args.destination, priority_key)
        await orchestrator.refresh.wait()

    except SweepError as e:
        logger.error(f"Sweep aborted: {e}")
        return 1

    for outcome in result.outcomes:
        print(
            f"Batch {outcome.index}: {outcome.state.value}"
            + (f" {outcome.signature}" if outcome.signature else "")
            + (f" ({outcome.error_type}: {outcome.error})" if outcome.error else "")
        )
    print(f"Result: {result.summary()}")
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
