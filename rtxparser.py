#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
RTX Config Parser

Classifies a Yamaha RTX style configuration dump into a context-annotated
statement stream, decodes the common sections and prints reports.
"""

import argparse
import re
import sys
from typing import NamedTuple, Optional

from config_model import Context, ContextKind, ContextRegistry, ParsedConfig, Statement


class Line(NamedTuple):
    """One normalized input line."""
    text: str
    line_number: int
    indent_level: int
    is_blank: bool
    is_comment: bool


def normalize_lines(raw) -> list:
    """Splits raw text into Line records.

    Accepts str or bytes; CRLF and lone CR terminators are folded into LF.
    Line numbers are 1-based and count every physical line.
    """
    if raw is None:
        raw = ''
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8', errors='replace')
    raw = raw.replace('\r\n', '\n').replace('\r', '\n')

    lines = []
    for number, physical in enumerate(raw.split('\n'), start=1):
        text = physical.strip()
        lines.append(Line(
            text=text,
            line_number=number,
            indent_level=_indent_level(physical),
            is_blank=not text,
            is_comment=text.startswith('#'),
        ))
    return lines


def _indent_level(line: str) -> int:
    """Counts leading spaces and tabs."""
    return len(line) - len(line.lstrip(' \t'))


class _ContextState:
    """Current context plus the single saved parent slot.

    The only nesting the dialect has is an ipsec tunnel inside a tunnel, so
    the stack is one slot deep.
    """
    __slots__ = ('current', 'parent')

    def __init__(self):
        self.current: Optional[Context] = None
        self.parent: Optional[Context] = None

    def enter(self, context: Context):
        if context.kind is ContextKind.IPSEC_TUNNEL:
            if self.current is not None and self.current.kind is ContextKind.TUNNEL:
                self.parent = self.current
            # ipsec tunnel under ipsec tunnel keeps the saved tunnel
        elif context.kind in (ContextKind.TUNNEL, ContextKind.PEER):
            self.parent = None
        self.current = context

    def pop(self):
        """Restores the saved parent, or falls back to global."""
        self.current = self.parent
        self.parent = None

    def clear(self):
        self.current = None
        self.parent = None

    def enclosing_tunnel(self) -> Optional[Context]:
        if self.current is None:
            return None
        if self.current.kind is ContextKind.TUNNEL:
            return self.current
        if self.current.kind is ContextKind.IPSEC_TUNNEL:
            return self.parent
        return None


class RTXParser:
    """Classifies an RTX config dump into a ParsedConfig."""
    # --- Context entry patterns ---
    TUNNEL_SELECT_RE    = re.compile(r'^\s*tunnel\s+select\s+(\d+)\s*$')
    PP_SELECT_RE        = re.compile(r'^\s*pp\s+select\s+(\d+)\s*$')
    PP_ANONYMOUS_RE     = re.compile(r'^\s*pp\s+select\s+anonymous\s*$')
    IPSEC_TUNNEL_RE     = re.compile(r'^\s*ipsec\s+tunnel\s+(\d+)\s*$')
    # tunnel enable 1, pp disable anonymous, ...
    CONTEXT_EXIT_RE     = re.compile(r'^(tunnel|pp)\s+(enable|disable)\s+')

    # Statements considered native to each context. An indent-0 line outside
    # this list ends the context.
    CONTEXTUAL_PREFIXES = {
        ContextKind.TUNNEL:       ('tunnel ', 'ipsec ', 'l2tp ', 'description '),
        ContextKind.PEER:         ('pp ', 'pppoe ', 'ppp ', 'ip pp ', 'description '),
        ContextKind.IPSEC_TUNNEL: ('ipsec ',),
    }
    # Inside an ipsec tunnel these belong to the enclosing tunnel.
    PARENT_TUNNEL_PREFIXES = ('l2tp ', 'tunnel endpoint', 'tunnel enable', 'ip tunnel ')

    def __init__(self, raw, debug=False):
        self.raw = raw
        self.debug = debug

    def parse(self) -> ParsedConfig:
        """Runs the classification pass and returns a ParsedConfig."""
        lines = normalize_lines(self.raw)
        raw_text = self.raw.decode('utf-8', errors='replace') if isinstance(self.raw, (bytes, bytearray)) else (self.raw or '')
        statements = []
        ipsec_parents = []
        line_count = comment_count = transition_count = 0
        registry = ContextRegistry()
        state = _ContextState()
        if self.debug: print("*** RTXParser START ***")

        for line in lines:
            if line.is_blank:
                continue
            line_count += 1
            if line.is_comment:
                comment_count += 1
                continue

            text = line.text
            new_context = self._detect_context(text, state)
            if new_context is not None:
                state.enter(new_context)
                if registry.add(new_context) and self.debug:
                    print(f"[L{line.line_number}] New context: {new_context}")
                elif self.debug:
                    print(f"[L{line.line_number}] Re-entering context: {new_context}")
                if new_context.kind is ContextKind.IPSEC_TUNNEL:
                    pair = (state.parent, new_context)
                    if pair not in ipsec_parents:
                        ipsec_parents.append(pair)
                transition_count += 1
                continue

            reattached = False
            if (state.current is not None and state.current.kind is ContextKind.IPSEC_TUNNEL
                    and state.parent is not None and text.startswith(self.PARENT_TUNNEL_PREFIXES)):
                if self.debug: print(f"[L{line.line_number}] Back to parent {state.parent}: {text}")
                state.pop()
                reattached = True

            if state.current is not None and self.CONTEXT_EXIT_RE.match(text):
                statements.append(self._statement(line, state.current))
                if self.debug: print(f"[L{line.line_number}] Leaving {state.current}: {text}")
                state.clear()
                continue

            if (line.indent_level == 0 and state.current is not None and not reattached
                    and not self._is_contextual(text, state.current)):
                if self.debug: print(f"[L{line.line_number}] Implicit end of {state.current}: {text}")
                state.pop()

            statements.append(self._statement(line, state.current))

        result = ParsedConfig(
            statements=statements,
            contexts=registry.as_list(),
            ipsec_parents=ipsec_parents,
            line_count=line_count,
            statement_count=len(statements),
            comment_count=comment_count,
            transition_count=transition_count,
            raw=raw_text,
        )
        if self.debug:
            print(f"*** RTXParser END: {result.statement_count} statements, {len(result.contexts)} contexts ***")
        return result

    def _detect_context(self, text: str, state: _ContextState) -> Optional[Context]:
        """Returns the context a selector line opens, or None."""
        m = self.TUNNEL_SELECT_RE.match(text)
        if m:
            return Context(ContextKind.TUNNEL, int(m.group(1)))
        if self.PP_ANONYMOUS_RE.match(text):
            return Context(ContextKind.PEER, 0, 'anonymous')
        m = self.PP_SELECT_RE.match(text)
        if m:
            return Context(ContextKind.PEER, int(m.group(1)))
        m = self.IPSEC_TUNNEL_RE.match(text)
        if m:
            tunnel = state.enclosing_tunnel()
            ipsec_id = int(m.group(1))
            # A tunnel binding an ipsec tunnel of its own number stays a tunnel statement.
            if tunnel is not None and ipsec_id != tunnel.id:
                return Context(ContextKind.IPSEC_TUNNEL, ipsec_id)
        return None

    def _is_contextual(self, text: str, context: Context) -> bool:
        prefixes = self.CONTEXTUAL_PREFIXES.get(context.kind, ())
        return text.startswith(prefixes)

    @staticmethod
    def _statement(line: Line, context: Optional[Context]) -> Statement:
        return Statement(
            text=line.text,
            context=context,
            line_number=line.line_number,
            indent_level=line.indent_level,
        )


def classify(raw) -> ParsedConfig:
    """Classifies ``raw`` config text. Never raises for any str or bytes input."""
    return RTXParser(raw).parse()


def parse_context_ref(ref: str) -> Optional[Context]:
    """Parses a CLI context reference: ``global``, ``tunnel:1``, ``pp:anonymous``, ``ipsec-tunnel:101``."""
    ref = ref.strip().lower()
    if ref == 'global':
        return None
    kind_str, sep, ident = ref.partition(':')
    if not sep or not ident:
        raise ValueError(f"Invalid context reference '{ref}' (expected KIND:ID or 'global')")
    try:
        kind = ContextKind(kind_str)
    except ValueError:
        raise ValueError(f"Unknown context kind '{kind_str}'") from None
    if kind is ContextKind.GLOBAL:
        return None
    if ident.isdigit():
        return Context(kind, int(ident))
    if kind is ContextKind.PEER and ident == 'anonymous':
        return Context(kind, 0, 'anonymous')
    raise ValueError(f"Invalid context id '{ident}' for {kind}")


def main():
    # Report modules are only needed by the CLI.
    from diagram_generator import ContextDiagramGenerator
    from diff_utils import compare_parsed, format_diff_text
    from extractors import build_model
    from utils import print_table

    p = argparse.ArgumentParser(description="RTX router config classifier & report generator")
    p.add_argument('config_file', help="RTX config dump (show config / config.txt)")
    p.add_argument('--context', help="Only list statements of this context (global, tunnel:1, pp:anonymous, ipsec-tunnel:101)")
    p.add_argument('--global-only', action='store_true', help="Only list statements outside any context")
    p.add_argument('--compare', metavar='OTHER_FILE', help="Compare against a second config dump")
    p.add_argument('--diagram', metavar='BASENAME', help="Render the context diagram to BASENAME.png/.svg")
    p.add_argument('--no-tables', action='store_true', help="Skip printing decoded section tables")
    p.add_argument('--debug', action='store_true', help="Trace context transitions while classifying")

    args = p.parse_args()

    context_filter = None
    if args.context:
        try:
            context_filter = parse_context_ref(args.context)
        except ValueError as e:
            p.error(str(e))

    raw = _read_config(args.config_file)
    print(f"Classifying configuration file: {args.config_file}...")
    parsed = RTXParser(raw, debug=args.debug).parse()
    print(f"Lines: {parsed.line_count}  Statements: {parsed.statement_count}  "
          f"Comments: {parsed.comment_count}  Contexts: {len(parsed.contexts)}")

    rows = [[r['context'], r['kind'], r['statements'], r['first_line'] or '-', r['last_line'] or '-']
            for r in parsed.context_summary()]
    print_table("Contexts", ["Context", "Kind", "Statements", "First Line", "Last Line"], rows)

    if args.global_only or args.context:
        if args.global_only or context_filter is None:
            selected, title = parsed.global_statements(), "Global Statements"
        else:
            selected, title = parsed.statements_in(context_filter), f"Statements in {context_filter}"
        rows = [[s.line_number, s.indent_level, s.text] for s in selected]
        print_table(title, ["Line", "Indent", "Statement"], rows)

    model = build_model(parsed)
    if not args.no_tables:
        _print_model_tables(model, print_table)

    if args.diagram:
        generator = ContextDiagramGenerator(parsed, model)
        generator.generate_diagram(args.diagram)

    if args.compare:
        other_raw = _read_config(args.compare)
        other = classify(other_raw)
        diff = compare_parsed(parsed, other, model, build_model(other))
        print("\n--- Configuration Differences ---")
        print(format_diff_text(diff))

    print("\nProcessing finished.")


def _read_config(path):
    try:
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            return f.read()
    except OSError as e:
        print(f"Error opening config file '{path}': {e}", file=sys.stderr)
        sys.exit(1)


def _print_model_tables(model, print_table):
    rows = []
    for route in model.static_routes:
        for hop in route['next_hops']:
            rows.append([route['prefix'], route['mask'], hop.get('next_hop') or hop.get('interface') or '-',
                         hop.get('distance', 1), hop.get('filter') or '-',
                         'Yes' if hop.get('permanent') else 'No'])
    print_table("Static Routes", ["Prefix", "Mask", "Gateway", "Weight", "Filter", "Keepalive"], rows)

    rows = [[name, 'dhcp' if i['dhcp'] else i['address'] or '-',
             ' '.join(map(str, i['secure_filter_in'])) or '-', ' '.join(map(str, i['secure_filter_out'])) or '-',
             i['nat_descriptor'] or '-', i['description'] or '-']
            for name, i in model.interfaces.items()]
    print_table("Interfaces", ["Interface", "Address", "Filter In", "Filter Out", "NAT", "Description"], rows)

    rows = [[f['number'], f['action'], f['source_address'], f['dest_address'], f['protocol'],
             f['source_port'] or '-', f['dest_port'] or '-'] for f in model.ip_filters]
    print_table("IP Filters", ["Number", "Action", "Source", "Destination", "Protocol", "Src Port", "Dst Port"], rows)

    rows = [[s['scope_id'], f"{s['range_start']}-{s['range_end']}/{s['prefix']}", s['gateway'] or '-',
             s['lease'] or '-'] for s in model.dhcp_scopes]
    print_table("DHCP Scopes", ["Scope", "Range", "Gateway", "Lease (s)"], rows)

    dns = model.dns
    rows = [[', '.join(dns.get('name_servers', [])) or '-', dns.get('domain_name') or '-',
             'on' if dns.get('service_on') else 'off', len(dns.get('server_select', [])),
             len(dns.get('hosts', []))]] if dns else []
    print_table("DNS", ["Servers", "Domain", "Service", "Server Selects", "Static Hosts"], rows)

    rows = [[n['descriptor_id'], n.get('outer_address') or '-', n.get('inner_network') or '-',
             len(n.get('static_entries', []))] for n in model.nat_masquerade]
    print_table("NAT Masquerade", ["Descriptor", "Outer", "Inner", "Static Entries"], rows)

    rows = [[h['address'], h.get('port') or 514] for h in model.syslog.get('hosts', [])]
    print_table("Syslog Hosts", ["Address", "Port"], rows)

    rows = []
    for tunnel_id, t in model.tunnels.items():
        endpoint = t.get('endpoint_name') or t.get('endpoint_remote') or '-'
        rows.append([tunnel_id, t.get('encapsulation') or '-', endpoint,
                     ','.join(str(i) for i in t.get('ipsec_tunnels', [])) or '-',
                     'Yes' if t.get('enabled') else 'No', t.get('description') or '-'])
    print_table("Tunnels", ["ID", "Encapsulation", "Endpoint", "IPsec Tunnels", "Enabled", "Description"], rows)

    rows = [[key, p.get('bind') or p.get('pppoe_use') or '-', p.get('auth_accept') or p.get('auth_request') or '-',
             'Yes' if p.get('enabled') else 'No', p.get('description') or '-']
            for key, p in model.peers.items()]
    print_table("PP Peers", ["PP", "Bind/PPPoE", "Auth", "Enabled", "Description"], rows)

    rows = [[u['username'], 'Yes' if u['encrypted'] else 'No',
             {True: 'Yes', False: 'No'}.get(u['attributes']['administrator'], '-')]
            for u in model.admin.get('users', [])]
    print_table("Login Users", ["User", "Encrypted", "Administrator"], rows)


if __name__ == '__main__':
    main()
