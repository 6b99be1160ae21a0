"""Message compilation and the versioned message wire format"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

import base58

from .account import AccountReference, Operation, merge, readonly, signer_writable
from .address import ADDRESS_LENGTH, Address
from .encoding import ByteReader, encode_bytes, encode_length
from .errors import EncodingError, LookupTableContractError, MessageTooLarge
from .lookup_table import AddressLookupTable, AddressTableLookup, plan_lookups

log = logging.getLogger(__name__)

VERSION_PREFIX = 0x80
MESSAGE_VERSION = 0
BLOCKHASH_LENGTH = 32
# Account indexes are single bytes.
MAX_ACCOUNT_KEYS = 256
MAX_HEADER_COUNT = 255


@dataclass(frozen=True)
class MessageHeader:
    """Transaction message header"""
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int


@dataclass(frozen=True)
class CompiledInstruction:
    """Compiled instruction"""
    program_id_index: int
    accounts: Tuple[int, ...]
    data: bytes


def coerce_blockhash(token: Union[bytes, str]) -> bytes:
    """Accept a raw 32-byte freshness token or its base58 text"""
    raw = base58.b58decode(token) if isinstance(token, str) else bytes(token)
    if len(raw) != BLOCKHASH_LENGTH:
        raise ValueError(f"Freshness token must be {BLOCKHASH_LENGTH} bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class CompiledMessage:
    """Versioned (v0) transaction message"""
    header: MessageHeader
    account_keys: Tuple[Address, ...]
    recent_blockhash: bytes
    instructions: Tuple[CompiledInstruction, ...]
    address_table_lookups: Tuple[AddressTableLookup, ...] = ()

    @property
    def loaded_address_count(self) -> int:
        return sum(
            len(lookup.writable_indexes) + len(lookup.readonly_indexes)
            for lookup in self.address_table_lookups
        )

    @property
    def account_count(self) -> int:
        """Static keys plus addresses loaded through lookup tables"""
        return len(self.account_keys) + self.loaded_address_count

    def signer_keys(self) -> List[Address]:
        return list(self.account_keys[:self.header.num_required_signatures])

    def is_static_writable(self, index: int) -> bool:
        h = self.header
        if index < h.num_required_signatures:
            return index < h.num_required_signatures - h.num_readonly_signed_accounts
        return index < len(self.account_keys) - h.num_readonly_unsigned_accounts

    def resolve_account_keys(self, tables: Mapping[Address, AddressLookupTable]) -> List[Address]:
        """Full index space: static keys, then writable loads, then read-only loads"""
        loaded_writable: List[Address] = []
        loaded_readonly: List[Address] = []
        for lookup in self.address_table_lookups:
            table = tables.get(lookup.account_key)
            if table is None:
                raise KeyError(f"Missing lookup table account {lookup.account_key}")
            loaded_writable.extend(table.addresses[i] for i in lookup.writable_indexes)
            loaded_readonly.extend(table.addresses[i] for i in lookup.readonly_indexes)
        return list(self.account_keys) + loaded_writable + loaded_readonly

    def serialize(self) -> bytes:
        """Serialize message to bytes"""
        parts = [bytes([VERSION_PREFIX | MESSAGE_VERSION])]

        # Header
        parts.append(bytes([
            self.header.num_required_signatures,
            self.header.num_readonly_signed_accounts,
            self.header.num_readonly_unsigned_accounts,
        ]))

        # Account keys
        parts.append(encode_length(len(self.account_keys)))
        for key in self.account_keys:
            parts.append(key.raw)

        # Recent blockhash
        parts.append(self.recent_blockhash)

        # Instructions
        parts.append(encode_length(len(self.instructions)))
        for instruction in self.instructions:
            parts.append(bytes([instruction.program_id_index]))
            parts.append(encode_bytes(bytes(instruction.accounts)))
            parts.append(encode_bytes(instruction.data))

        # Address table lookups
        parts.append(encode_length(len(self.address_table_lookups)))
        for lookup in self.address_table_lookups:
            parts.append(lookup.account_key.raw)
            parts.append(encode_bytes(bytes(lookup.writable_indexes)))
            parts.append(encode_bytes(bytes(lookup.readonly_indexes)))

        return b''.join(parts)

    @classmethod
    def read_from(cls, reader: ByteReader) -> 'CompiledMessage':
        prefix = reader.read_u8()
        if not prefix & VERSION_PREFIX:
            raise EncodingError('Legacy (unversioned) messages are not supported')
        if prefix & 0x7f != MESSAGE_VERSION:
            raise EncodingError(f"Unsupported message version {prefix & 0x7f}")

        header = MessageHeader(reader.read_u8(), reader.read_u8(), reader.read_u8())
        key_count = reader.read_length()
        keys = tuple(Address(reader.read(ADDRESS_LENGTH)) for _ in range(key_count))
        blockhash = reader.read(BLOCKHASH_LENGTH)

        instructions = []
        for _ in range(reader.read_length()):
            program_id_index = reader.read_u8()
            accounts = tuple(reader.read_prefixed())
            data = reader.read_prefixed()
            instructions.append(CompiledInstruction(program_id_index, accounts, data))

        lookups = []
        for _ in range(reader.read_length()):
            key = Address(reader.read(ADDRESS_LENGTH))
            w_idx = tuple(reader.read_prefixed())
            r_idx = tuple(reader.read_prefixed())
            lookups.append(AddressTableLookup(key, w_idx, r_idx))

        return cls(header, keys, blockhash, tuple(instructions), tuple(lookups))

    @classmethod
    def deserialize(cls, data: bytes) -> 'CompiledMessage':
        reader = ByteReader(data)
        message = cls.read_from(reader)
        reader.expect_end()
        return message


def _collect_references(
    operations: Sequence[Operation],
    fee_payer: Optional[Address],
) -> Dict[Address, AccountReference]:
    refs: Dict[Address, AccountReference] = {}

    def add(ref: AccountReference):
        existing = refs.get(ref.address)
        refs[ref.address] = merge(existing, ref) if existing is not None else ref

    if fee_payer is not None:
        add(signer_writable(fee_payer))
    for op in operations:
        add(readonly(op.program_id))
        for ref in op.accounts:
            add(ref)
    return refs


def compile_message(
    operations: Sequence[Operation],
    recent_blockhash: Union[bytes, str],
    fee_payer: Optional[Address] = None,
    lookup_tables: Sequence[AddressLookupTable] = (),
) -> CompiledMessage:
    """Compile operations into a v0 message.

    Program ids are kept in the static key list as non-signer read-only
    accounts. Non-signer accounts found in lookup_tables are loaded through
    table references instead of being inlined.

    Raises:
        MessageTooLarge: more accounts than single-byte indexes can address
        LookupTableContractError: a signer or program id ended up in a lookup
    """
    if not operations:
        raise ValueError('operations must not be empty')
    blockhash = coerce_blockhash(recent_blockhash)

    refs = _collect_references(operations, fee_payer)
    program_ids = {op.program_id for op in operations}

    plan = plan_lookups(list(refs.values()), lookup_tables, program_ids)
    loaded = plan.loaded
    for address in loaded:
        ref = refs.get(address)
        if ref is None:
            raise LookupTableContractError(f"Lookup plan loads unreferenced address {address}")
        if ref.is_signer:
            raise LookupTableContractError(f"Signer {address} routed through a lookup table")
        if address in program_ids:
            raise LookupTableContractError(f"Program id {address} routed through a lookup table")

    blocks: Tuple[List[Address], ...] = ([], [], [], [])
    for address, ref in refs.items():
        if address in loaded:
            continue
        if ref.is_signer:
            blocks[0 if ref.is_writable else 1].append(address)
        else:
            blocks[2 if ref.is_writable else 3].append(address)
    signer_w, signer_r, plain_w, plain_r = blocks
    account_keys = signer_w + signer_r + plain_w + plain_r

    total = len(account_keys) + len(loaded)
    if total > MAX_ACCOUNT_KEYS:
        raise MessageTooLarge(f"{total} accounts exceed the {MAX_ACCOUNT_KEYS}-account ceiling")
    num_signers = len(signer_w) + len(signer_r)
    if max(num_signers, len(plain_r)) > MAX_HEADER_COUNT:
        raise MessageTooLarge('Header count exceeds one byte')

    header = MessageHeader(
        num_required_signatures=num_signers,
        num_readonly_signed_accounts=len(signer_r),
        num_readonly_unsigned_accounts=len(plain_r),
    )

    index_space = account_keys + list(plan.loaded_writable) + list(plan.loaded_readonly)
    index_of = {address: i for i, address in enumerate(index_space)}
    instructions = tuple(
        CompiledInstruction(
            program_id_index=index_of[op.program_id],
            accounts=tuple(index_of[ref.address] for ref in op.accounts),
            data=op.data,
        )
        for op in operations
    )

    log.debug(
        'Compiled %d operations: %d static keys, %d loaded, %d lookups',
        len(operations), len(account_keys), len(loaded), len(plan.lookups),
    )
    return CompiledMessage(
        header=header,
        account_keys=tuple(account_keys),
        recent_blockhash=blockhash,
        instructions=instructions,
        address_table_lookups=plan.lookups,
    )
