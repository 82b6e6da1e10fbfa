"""
Data models for Solana listener output.

SignatureInfo is the unit returned by getSignaturesForAddress. RawTransaction is a
normalized view over a getTransaction result (jsonParsed or json encoding) so the
extractor, venue detector, and classifier never touch raw RPC dicts. Missing lists
normalize to empty ones; a malformed payload yields no balance change rather than
an error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SOL_MINT = "So11111111111111111111111111111111111111112"
SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 1_000_000_000
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"


@dataclass(frozen=True)
class SignatureInfo:
    """
    Normalized transaction signature info from getSignaturesForAddress.

    Mirrors Solana RPC response fields.
    """

    signature: str
    slot: int
    err: Any  # None if success; dict/object from RPC if failed
    block_time: int | None  # Unix timestamp; None if not available
    memo: str | None = None
    confirmation_status: str | None = None  # processed | confirmed | finalized

    @property
    def failed(self) -> bool:
        return self.err is not None

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "SignatureInfo":
        """Build from a single getSignaturesForAddress result item."""
        return cls(
            signature=item["signature"],
            slot=int(item.get("slot") or 0),
            err=item.get("err"),
            block_time=item.get("blockTime"),
            memo=item.get("memo"),
            confirmation_status=item.get("confirmationStatus"),
        )


@dataclass(frozen=True)
class Instruction:
    """One top-level or inner instruction with its program id resolved."""

    program_id: str | None
    parsed_type: str | None = None
    info: dict[str, Any] = field(default_factory=dict)
    inner: bool = False


@dataclass(frozen=True)
class TokenBalance:
    """A pre/post token balance entry; amount_raw is the integer base-unit amount."""

    account_index: int
    mint: str
    owner: str | None
    amount_raw: int
    decimals: int

    @property
    def ui_amount(self) -> float:
        return self.amount_raw / (10 ** self.decimals)

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "TokenBalance | None":
        mint = item.get("mint")
        if not mint:
            return None
        ui = item.get("uiTokenAmount") or {}
        decimals = int(ui.get("decimals") or 0)
        raw = ui.get("amount")
        try:
            amount_raw = int(raw) if raw is not None else _ui_string_to_raw(ui, decimals)
        except (TypeError, ValueError):
            amount_raw = _ui_string_to_raw(ui, decimals)
        return cls(
            account_index=int(item.get("accountIndex") or 0),
            mint=mint,
            owner=item.get("owner"),
            amount_raw=amount_raw,
            decimals=decimals,
        )


def _ui_string_to_raw(ui: dict[str, Any], decimals: int) -> int:
    text = ui.get("uiAmountString")
    if text is None and ui.get("uiAmount") is not None:
        text = str(ui["uiAmount"])
    try:
        return round(float(text or "0") * (10 ** decimals))
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class BalanceDelta:
    """Balance change of one asset for the monitored address, in whole units."""

    asset_id: str
    amount_delta: float
    decimals: int
    is_native: bool = False


@dataclass
class RawTransaction:
    """Normalized getTransaction result."""

    signature: str
    slot: int
    block_time: int | None
    err: Any
    account_keys: list[str]
    signers: list[str]
    instructions: list[Instruction]
    inner_instructions: list[Instruction]
    pre_balances: list[int]
    post_balances: list[int]
    pre_token_balances: list[TokenBalance]
    post_token_balances: list[TokenBalance]

    @property
    def signer(self) -> str | None:
        """Fee payer / first signer; falls back to the first account key."""
        if self.signers:
            return self.signers[0]
        return self.account_keys[0] if self.account_keys else None

    def all_instructions(self) -> list[Instruction]:
        return [*self.instructions, *self.inner_instructions]

    @classmethod
    def from_rpc_result(cls, signature: str, raw: dict[str, Any]) -> "RawTransaction":
        message, meta = _get_message_and_meta(raw)
        account_keys, signers = _get_account_keys(message, meta)
        header = message.get("header") or {}
        if not signers and header.get("numRequiredSignatures"):
            signers = account_keys[: int(header["numRequiredSignatures"])]

        top = [
            _normalize_instruction(ix, account_keys, inner=False)
            for ix in message.get("instructions") or []
            if isinstance(ix, dict)
        ]
        inner: list[Instruction] = []
        for block in meta.get("innerInstructions") or []:
            if not isinstance(block, dict):
                continue
            for ix in block.get("instructions") or []:
                if isinstance(ix, dict):
                    inner.append(_normalize_instruction(ix, account_keys, inner=True))

        slot = raw.get("slot")
        block_time = raw.get("blockTime")
        return cls(
            signature=signature,
            slot=int(slot) if slot is not None else 0,
            block_time=int(block_time) if isinstance(block_time, (int, float)) else None,
            err=meta.get("err"),
            account_keys=account_keys,
            signers=signers,
            instructions=top,
            inner_instructions=inner,
            pre_balances=_int_list(meta.get("preBalances")),
            post_balances=_int_list(meta.get("postBalances")),
            pre_token_balances=_token_balances(meta.get("preTokenBalances")),
            post_token_balances=_token_balances(meta.get("postTokenBalances")),
        )


def _get_message_and_meta(raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return (transaction.message, meta) from getTransaction-style result; empty dicts when absent."""
    tx_obj = raw.get("transaction")
    message = tx_obj.get("message") if isinstance(tx_obj, dict) else None
    meta = raw.get("meta")
    return (
        message if isinstance(message, dict) else {},
        meta if isinstance(meta, dict) else {},
    )


def _get_account_keys(
    message: dict[str, Any],
    meta: dict[str, Any],
) -> tuple[list[str], list[str]]:
    """
    Resolve accountKeys to base58 strings (handles json vs jsonParsed) and collect signers.
    For json-encoded versioned transactions, appends meta.loadedAddresses (writable + readonly).
    """
    keys = message.get("accountKeys") or []
    out: list[str] = []
    signers: list[str] = []
    parsed_form = False
    for k in keys:
        if isinstance(k, str):
            out.append(k)
        elif isinstance(k, dict):
            parsed_form = True
            pubkey = k.get("pubkey", "")
            out.append(pubkey)
            if k.get("signer"):
                signers.append(pubkey)
    if not parsed_form:
        loaded = meta.get("loadedAddresses") or {}
        for role in ("writable", "readonly"):
            out.extend(a for a in loaded.get(role) or [] if isinstance(a, str))
    return out, signers


def _normalize_instruction(
    ix: dict[str, Any],
    account_keys: list[str],
    *,
    inner: bool,
) -> Instruction:
    program_id = ix.get("programId")
    if program_id is None:
        idx = ix.get("programIdIndex")
        if isinstance(idx, int) and 0 <= idx < len(account_keys):
            program_id = account_keys[idx]
    parsed = ix.get("parsed")
    parsed_type = None
    info: dict[str, Any] = {}
    if isinstance(parsed, dict):
        parsed_type = parsed.get("type")
        if isinstance(parsed.get("info"), dict):
            info = parsed["info"]
    return Instruction(program_id=program_id, parsed_type=parsed_type, info=info, inner=inner)


def _int_list(values: Any) -> list[int]:
    if not isinstance(values, list):
        return []
    out = []
    for v in values:
        try:
            out.append(int(v or 0))
        except (TypeError, ValueError):
            out.append(0)
    return out


def _token_balances(values: Any) -> list[TokenBalance]:
    if not isinstance(values, list):
        return []
    out = []
    for item in values:
        if isinstance(item, dict):
            tb = TokenBalance.from_rpc_item(item)
            if tb is not None:
                out.append(tb)
    return out
