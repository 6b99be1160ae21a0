"""Address lookup tables: decoding, planning, session proposals and maintenance"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .account import AccountReference, Operation, readonly, signer, signer_writable, writable
from .address import ADDRESS_LENGTH, ADDRESS_LOOKUP_TABLE_PROGRAM, SYSTEM_PROGRAM, Address, find_program_address
from .encoding import encode_u32, encode_u64, encode_u8

log = logging.getLogger(__name__)

# On-chain table state keeps 56 bytes of metadata ahead of the address list.
LOOKUP_TABLE_META_SIZE = 56
MAX_TABLE_INDEX = 255

_CREATE_TAG = 0
_EXTEND_TAG = 2


@dataclass(frozen=True)
class AddressLookupTable:
    """Client-side view of an on-chain lookup table"""
    key: Address
    addresses: Tuple[Address, ...]

    @classmethod
    def decode(cls, key: Address, data: bytes) -> 'AddressLookupTable':
        if len(data) < LOOKUP_TABLE_META_SIZE:
            return cls(key, ())
        addresses = []
        offset = LOOKUP_TABLE_META_SIZE
        while offset + ADDRESS_LENGTH <= len(data):
            addresses.append(Address(data[offset:offset + ADDRESS_LENGTH]))
            offset += ADDRESS_LENGTH
        return cls(key, tuple(addresses))


@dataclass(frozen=True)
class AddressTableLookup:
    """Reference from a compiled message into one lookup table"""
    account_key: Address
    writable_indexes: Tuple[int, ...]
    readonly_indexes: Tuple[int, ...]


@dataclass(frozen=True)
class LookupPlan:
    """Chosen lookups and the addresses they load, in index-space order"""
    lookups: Tuple[AddressTableLookup, ...] = ()
    loaded_writable: Tuple[Address, ...] = ()
    loaded_readonly: Tuple[Address, ...] = ()

    @property
    def loaded(self) -> Set[Address]:
        return set(self.loaded_writable) | set(self.loaded_readonly)


async def fetch_lookup_table(client, key: Address) -> Optional[AddressLookupTable]:
    """Read and decode a table account through a LedgerClient"""
    data = await client.fetch_account_data(key)
    if data is None:
        return None
    return AddressLookupTable.decode(key, data)


def plan_lookups(
    references: Sequence[AccountReference],
    tables: Sequence[AddressLookupTable],
    exclude: Iterable[Address],
) -> LookupPlan:
    """Greedily pick tables covering the most eligible addresses.

    Args:
        references: merged account references for the whole message
        tables: candidate lookup tables
        exclude: addresses that must stay in the static key list

    Signers are never eligible, whether or not they appear in exclude.
    """
    excluded = set(exclude)
    eligible = {
        ref.address: ref for ref in references
        if not ref.is_signer and ref.address not in excluded
    }
    if not eligible or not tables:
        return LookupPlan()

    uncovered = set(eligible)
    remaining = list(tables)
    selected: List[AddressLookupTable] = []
    while uncovered and remaining:
        best_idx = -1
        best_cover = 0
        for i, table in enumerate(remaining):
            cover = len(uncovered.intersection(table.addresses[:MAX_TABLE_INDEX + 1]))
            if cover > best_cover:
                best_idx, best_cover = i, cover
        if best_idx < 0:
            break
        table = remaining.pop(best_idx)
        selected.append(table)
        uncovered.difference_update(table.addresses[:MAX_TABLE_INDEX + 1])

    lookups = []
    loaded_writable: List[Address] = []
    loaded_readonly: List[Address] = []
    assigned: Set[Address] = set()
    for table in selected:
        w_idx: List[int] = []
        r_idx: List[int] = []
        for idx, address in enumerate(table.addresses):
            if idx > MAX_TABLE_INDEX:
                break
            ref = eligible.get(address)
            if ref is None or address in assigned:
                continue
            assigned.add(address)
            if ref.is_writable:
                w_idx.append(idx)
                loaded_writable.append(address)
            else:
                r_idx.append(idx)
                loaded_readonly.append(address)
        if w_idx or r_idx:
            lookups.append(AddressTableLookup(table.key, tuple(w_idx), tuple(r_idx)))

    log.debug('Lookup plan uses %d tables, loads %d addresses', len(lookups), len(assigned))
    return LookupPlan(tuple(lookups), tuple(loaded_writable), tuple(loaded_readonly))


@dataclass
class Proposal:
    """Deterministic table contents proposed from session history"""
    addresses: List[Address]
    scores: Dict[Address, int]


class AddressFrequencyTracker:
    """Counts addresses seen across a session to propose stable table contents.

    Once capacity distinct addresses are tracked, new addresses are ignored
    while known ones keep counting. Proposals are ordered by descending count,
    then by first-seen order, so identical history yields identical tables.
    """

    def __init__(self, capacity: int = 50_000):
        self.capacity = capacity
        self._counts: Dict[Address, int] = {}
        self._first_seen: Dict[Address, int] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._counts)

    def note(self, address: Address):
        with self._lock:
            self._note(address)

    def _note(self, address: Address):
        if address in self._counts:
            self._counts[address] += 1
            return
        if len(self._counts) >= self.capacity:
            return
        self._counts[address] = 1
        self._first_seen[address] = len(self._first_seen)

    def ingest(self, operations: Iterable[Operation]):
        """Count every program id and account of each operation"""
        with self._lock:
            for op in operations:
                for address in op.addresses():
                    self._note(address)

    def propose(self, limit: int = 256) -> Proposal:
        with self._lock:
            ranked = sorted(
                self._counts.items(),
                key=lambda item: (-item[1], self._first_seen[item[0]]),
            )
            scores = dict(self._counts)
        return Proposal(addresses=[addr for addr, _ in ranked[:max(limit, 0)]], scores=scores)

    def snapshot(self) -> List[Address]:
        """Tracked addresses in first-seen order"""
        with self._lock:
            return sorted(self._first_seen, key=self._first_seen.__getitem__)

    def reset(self):
        with self._lock:
            self._counts.clear()
            self._first_seen.clear()


def derive_lookup_table_address(authority: Address, recent_slot: int) -> Tuple[Address, int]:
    return find_program_address([authority.raw, encode_u64(recent_slot)], ADDRESS_LOOKUP_TABLE_PROGRAM)


def create_lookup_table(authority: Address, payer: Address, recent_slot: int) -> Tuple[Operation, Address]:
    """CreateLookupTable { recent_slot: u64, bump_seed: u8 }"""
    table, bump = derive_lookup_table_address(authority, recent_slot)
    data = encode_u32(_CREATE_TAG) + encode_u64(recent_slot) + encode_u8(bump)
    accounts = (
        writable(table),
        signer(authority),
        signer_writable(payer),
        readonly(SYSTEM_PROGRAM),
    )
    return Operation(ADDRESS_LOOKUP_TABLE_PROGRAM, accounts, data), table


def extend_lookup_table(
    table: Address,
    authority: Address,
    new_addresses: Sequence[Address],
    payer: Optional[Address] = None,
) -> Operation:
    """ExtendLookupTable { new_addresses: Vec<Pubkey> }"""
    data = encode_u32(_EXTEND_TAG) + encode_u64(len(new_addresses))
    data += b''.join(addr.raw for addr in new_addresses)
    accounts = [writable(table), signer(authority)]
    if payer is not None:
        accounts.append(signer_writable(payer))
        accounts.append(readonly(SYSTEM_PROGRAM))
    return Operation(ADDRESS_LOOKUP_TABLE_PROGRAM, tuple(accounts), data)


@dataclass
class CreatePlan:
    """Create operation followed by extend operations for one table"""
    table_address: Address
    operations: List[Operation] = field(default_factory=list)


def extend_existing(
    table: Address,
    authority: Address,
    new_addresses: Sequence[Address],
    payer: Optional[Address] = None,
    extend_chunk: int = 20,
) -> List[Operation]:
    """Chunk new addresses into extend operations, de-duplicated in first-seen order"""
    ordered = list(dict.fromkeys(new_addresses))
    chunk = max(extend_chunk, 1)
    return [
        extend_lookup_table(table, authority, ordered[i:i + chunk], payer)
        for i in range(0, len(ordered), chunk)
    ]


def create_and_extend(
    authority: Address,
    payer: Address,
    recent_slot: int,
    addresses: Sequence[Address],
    extend_chunk: int = 20,
) -> CreatePlan:
    create_op, table = create_lookup_table(authority, payer, recent_slot)
    extends = extend_existing(table, authority, addresses, payer, extend_chunk)
    return CreatePlan(table, [create_op] + extends)


@dataclass
class MaintenanceBatch:
    """Operations for one maintenance transaction"""
    operations: List[Operation]
    label: str


def schedule_maintenance(
    plan: CreatePlan,
    max_extends_per_tx: int = 2,
    merge_create: bool = True,
) -> List[MaintenanceBatch]:
    """Split a create plan into transaction-sized batches.

    With merge_create the create operation shares its transaction with the
    first extend operation, saving a round trip. Later batches carry at most
    max_extends_per_tx extend operations each.
    """
    if not plan.operations:
        return []
    create_op, extends = plan.operations[0], plan.operations[1:]
    if not extends:
        return [MaintenanceBatch([create_op], 'alt-create')]

    out = []
    start = 0
    if merge_create:
        out.append(MaintenanceBatch([create_op, extends[0]], 'alt-create+extend-0'))
        start = 1
    else:
        out.append(MaintenanceBatch([create_op], 'alt-create'))

    per_tx = max(max_extends_per_tx, 1)
    for n, i in enumerate(range(start, len(extends), per_tx)):
        out.append(MaintenanceBatch(list(extends[i:i + per_tx]), f"alt-extend-{n + start}"))
    return out


def schedule_extends(extend_operations: Sequence[Operation], max_extends_per_tx: int = 2) -> List[MaintenanceBatch]:
    per_tx = max(max_extends_per_tx, 1)
    return [
        MaintenanceBatch(list(extend_operations[i:i + per_tx]), f"alt-extend-{n}")
        for n, i in enumerate(range(0, len(extend_operations), per_tx))
    ]
