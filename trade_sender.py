"""
Hand-off to the execution process over Redis.

TradeSender publishes one JSON buy command per accepted pool on the
`trading` channel; a separate process signs and sends the swap. The
sniper never waits for, or reads, an execution result.

OpenPositions reads how many bought tokens are still unsold (members of
a Redis set the execution process maintains).
"""
import json
import logging

from raydium.state import BuyCommand

logger = logging.getLogger("trade_sender")


class TradeSender:
    def __init__(self, redis_client=None, channel: str = "trading", dry_run: bool = False):
        self.redis = redis_client
        self.channel = channel
        self.dry_run = dry_run
        self.sent: int = 0

    async def send_buy(self, command: BuyCommand) -> None:
        payload = json.dumps(command.to_dict())
        if self.dry_run or self.redis is None:
            logger.info(
                f"[DRY RUN] buy {command.output_token} "
                f"for {command.input_amount} SOL (pool {command.pool_keys.id[:8]}..)"
            )
            print(f"\n{'*'*50}")
            print(f"  DRY RUN BUY: {command.output_token}")
            print(f"{'*'*50}\n")
            self.sent += 1
            return

        receivers = await self.redis.publish(self.channel, payload)
        self.sent += 1
        logger.info(
            f"[sent] buy {command.output_token} → '{self.channel}' "
            f"({receivers} subscriber{'s' if receivers != 1 else ''})"
        )
        if receivers == 0:
            logger.warning(f"No execution process listening on '{self.channel}'")


class OpenPositions:
    def __init__(self, redis_client=None, key: str = "solsniper:open_positions"):
        self.redis = redis_client
        self.key = key

    async def count(self) -> int:
        if self.redis is None:
            return 0
        return int(await self.redis.scard(self.key))
