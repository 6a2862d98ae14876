#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Data model for classified RTX router configuration.

A configuration dump is classified into a flat, ordered list of statements,
each carrying the context (tunnel, pp, nested ipsec tunnel) it belongs to.
The RouterModel holds the records decoded from those statements.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class ContextKind(Enum):
    """The closed set of configuration contexts."""
    GLOBAL = 'global'
    TUNNEL = 'tunnel'
    PEER = 'pp'
    IPSEC_TUNNEL = 'ipsec-tunnel'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class Context:
    """A resolved selection such as ``tunnel select 1`` or ``pp select anonymous``.

    Two contexts are equal when kind, id and name are all equal, so a peer
    selected by keyword (``Context(PEER, 0, 'anonymous')``) never collides
    with a numeric selection of the same id.
    """
    kind: ContextKind
    id: int
    name: str = ''

    @property
    def selector_line(self) -> str:
        """The statement that opens this context in a config dump."""
        ref = self.name or str(self.id)
        if self.kind is ContextKind.TUNNEL:
            return f"tunnel select {ref}"
        if self.kind is ContextKind.PEER:
            return f"pp select {ref}"
        if self.kind is ContextKind.IPSEC_TUNNEL:
            return f"ipsec tunnel {ref}"
        return ''

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.name or self.id}"

    def __str__(self):
        return self.selector_line or str(self.kind)


@dataclass(frozen=True)
class Statement:
    """One classified, non-blank, non-comment line."""
    text: str
    context: Optional[Context]
    line_number: int
    indent_level: int = 0

    @property
    def is_global(self) -> bool:
        return self.context is None


class ContextRegistry:
    """Insertion-ordered, deduplicated set of discovered contexts."""

    def __init__(self):
        self._contexts = {}

    def add(self, context: Context) -> bool:
        """Registers a context. Returns False if an equal one was already present."""
        if context in self._contexts:
            return False
        self._contexts[context] = None
        return True

    def __contains__(self, context):
        return context in self._contexts

    def __iter__(self):
        return iter(self._contexts)

    def __len__(self):
        return len(self._contexts)

    def as_list(self) -> list:
        return list(self._contexts)


@dataclass(frozen=True)
class ParsedConfig:
    """Result of one classification pass. Built once by the classifier, never updated."""
    statements: list = field(default_factory=list)
    contexts: list = field(default_factory=list)
    # (tunnel, ipsec tunnel) pairs in the order the ipsec tunnels were entered
    ipsec_parents: list = field(default_factory=list)
    line_count: int = 0        # non-blank lines, comments included
    statement_count: int = 0   # emitted statements
    comment_count: int = 0
    transition_count: int = 0  # context entry lines consumed by the classifier
    raw: str = ''

    def statements_in(self, context: Context) -> list:
        """Returns the statements attributed to ``context``, in source order."""
        return [s for s in self.statements if s.context == context]

    def global_statements(self) -> list:
        """Returns the statements outside any context, in source order."""
        return [s for s in self.statements if s.context is None]

    def contexts_of_kind(self, kind: ContextKind) -> list:
        return [c for c in self.contexts if c.kind is kind]

    def filter(self, predicate: Callable[[Statement], bool]) -> list:
        return [s for s in self.statements if predicate(s)]

    def context_summary(self) -> list:
        """One row per context (global first) with its statement count and line span."""
        rows = []
        global_stmts = self.global_statements()
        rows.append({
            'context': 'global',
            'kind': str(ContextKind.GLOBAL),
            'id': None,
            'name': '',
            'statements': len(global_stmts),
            'first_line': global_stmts[0].line_number if global_stmts else None,
            'last_line': global_stmts[-1].line_number if global_stmts else None,
        })
        for ctx in self.contexts:
            stmts = self.statements_in(ctx)
            rows.append({
                'context': str(ctx),
                'kind': str(ctx.kind),
                'id': ctx.id,
                'name': ctx.name,
                'statements': len(stmts),
                'first_line': stmts[0].line_number if stmts else None,
                'last_line': stmts[-1].line_number if stmts else None,
            })
        return rows


class RouterModel:
    """Holds the records decoded from a ParsedConfig."""
    def __init__(self):
        self.static_routes  = []    # [{'prefix', 'mask', 'next_hops': [...]}]
        self.dns            = {}    # dns server/domain/select/static settings
        self.nat_masquerade = []    # [{'descriptor_id', 'outer_address', ...}]
        self.syslog         = {}
        self.system         = {}    # timezone, console, packet buffers, statistics
        self.tunnels        = {}    # tunnel id -> tunnel record
        self.peers          = {}    # pp key ('1', 'anonymous') -> pp record
        self.interfaces     = {}    # interface name ('lan1', 'pp1') -> interface record
        self.ip_filters     = []    # [{'number', 'action', 'source_address', ...}]
        self.dhcp_scopes    = []    # [{'scope_id', 'range_start', 'range_end', ...}]
        self.admin          = {}    # login/administrator passwords and login users
        self.credentials    = {}    # passwords and secrets found in the dump
        self.source_statement_count = 0

    def section_counts(self) -> dict:
        """Number of decoded records per section, for summaries."""
        return {
            'Static Routes': len(self.static_routes),
            'DNS Servers': len(self.dns.get('name_servers', [])),
            'NAT Masquerade': len(self.nat_masquerade),
            'Syslog Hosts': len(self.syslog.get('hosts', [])),
            'Tunnels': len(self.tunnels),
            'PP Peers': len(self.peers),
            'Interfaces': len(self.interfaces),
            'IP Filters': len(self.ip_filters),
            'DHCP Scopes': len(self.dhcp_scopes),
            'Login Users': len(self.admin.get('users', [])),
        }
