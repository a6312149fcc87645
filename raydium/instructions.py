"""
Typed views over jsonParsed instructions.

getTransaction(jsonParsed) returns instructions either fully parsed
({"program", "programId", "parsed": {"type", "info"}}) or partially
decoded ({"programId", "accounts", "data"}). parse_instruction() turns
each into one tagged variant so field lookups fail in one place.
"""
from dataclasses import dataclass
from typing import Iterator, Union


class ExtractionError(Exception):
    """Transaction data is insufficient to describe a pool."""


class MissingField(ExtractionError):
    def __init__(self, name: str):
        super().__init__(f"missing field: {name}")
        self.name = name


@dataclass(frozen=True)
class PartiallyDecoded:
    program_id: str
    accounts: tuple
    data: str


@dataclass(frozen=True)
class Transfer:
    program_id: str
    source: str
    destination: str
    amount: int


@dataclass(frozen=True)
class MintTo:
    program_id: str
    mint: str
    account: str
    amount: int


@dataclass(frozen=True)
class InitializeMint:
    program_id: str
    mint: str
    decimals: int


@dataclass(frozen=True)
class OtherInstruction:
    program_id: str
    kind: str


Instruction = Union[PartiallyDecoded, Transfer, MintTo, InitializeMint, OtherInstruction]


def _field(info: dict, name: str):
    value = info.get(name)
    if value is None:
        raise MissingField(name)
    return value


def _amount(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise MissingField(name) from None


def parse_instruction(raw: dict) -> Instruction:
    program_id = raw.get("programId", "")
    parsed = raw.get("parsed")

    if parsed is None:
        return PartiallyDecoded(
            program_id=program_id,
            accounts=tuple(raw.get("accounts", [])),
            data=raw.get("data", ""),
        )
    # Some programs are "parsed" to a bare string (e.g. memo)
    if not isinstance(parsed, dict):
        return OtherInstruction(program_id=program_id, kind="")

    kind = parsed.get("type", "")
    info = parsed.get("info") or {}

    if kind == "transfer":
        # System program transfers carry lamports instead of amount
        raw_amount = info.get("amount", info.get("lamports"))
        return Transfer(
            program_id=program_id,
            source=_field(info, "source"),
            destination=_field(info, "destination"),
            amount=_amount(raw_amount, "amount"),
        )
    if kind == "transferChecked":
        token_amount = _field(info, "tokenAmount")
        return Transfer(
            program_id=program_id,
            source=_field(info, "source"),
            destination=_field(info, "destination"),
            amount=_amount(token_amount.get("amount"), "tokenAmount.amount"),
        )
    if kind in ("mintTo", "mintToChecked"):
        if kind == "mintToChecked":
            raw_amount = _field(info, "tokenAmount").get("amount")
        else:
            raw_amount = _field(info, "amount")
        return MintTo(
            program_id=program_id,
            mint=_field(info, "mint"),
            account=_field(info, "account"),
            amount=_amount(raw_amount, "amount"),
        )
    if kind in ("initializeMint", "initializeMint2"):
        return InitializeMint(
            program_id=program_id,
            mint=_field(info, "mint"),
            decimals=_amount(_field(info, "decimals"), "decimals"),
        )
    return OtherInstruction(program_id=program_id, kind=kind)


def iter_inner(inner_groups: list[dict]) -> Iterator[Instruction]:
    """Flatten meta.innerInstructions into parsed variants, in order."""
    for group in inner_groups:
        for raw in group.get("instructions", []):
            yield parse_instruction(raw)
