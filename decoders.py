#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Section decoders for RTX configuration text.

Every decoder takes the raw text of the statements selected for it and turns
it into plain dict records. Decoding is table driven: each section declares
(pattern, handler) rules and ``_apply_rules`` feeds it one line at a time.
Lines that match no rule are ignored.
"""
import ipaddress
import re
import sys


def _warn(message):
    print(f"Warning: {message}", file=sys.stderr)


def _lines(raw):
    """Yields stripped, non-blank, non-comment lines of ``raw``."""
    if not raw:
        return
    for line in raw.replace('\r\n', '\n').replace('\r', '\n').split('\n'):
        line = line.strip()
        if line and not line.startswith('#'):
            yield line


def _apply_rules(raw, rules, state):
    """Dispatches each line to the first rule whose pattern matches.

    Handlers are called as ``handler(state, match)``. Returns ``state``.
    """
    for line in _lines(raw):
        for pattern, handler in rules:
            m = pattern.match(line)
            if m:
                handler(state, m)
                break
    return state


def _on_off(value):
    return value == 'on'


def _is_ipv4(value):
    try:
        ipaddress.IPv4Address(value)
        return True
    except ValueError:
        return False


def _is_ip(value):
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


# --- Network notation ---

def cidr_to_mask(prefix_len):
    """24 -> '255.255.255.0'."""
    return str(ipaddress.IPv4Network(f"0.0.0.0/{prefix_len}").netmask)


def mask_to_cidr(mask):
    """'255.255.255.0' -> 24, or None for a malformed or non-contiguous mask."""
    try:
        return ipaddress.IPv4Network(f"0.0.0.0/{mask}").prefixlen
    except ValueError:
        return None


def parse_network(network):
    """Converts ``default``, ``a.b.c.d/len`` or ``a.b.c.d/m.m.m.m`` to (prefix, mask).

    Returns None when the notation is not valid.
    """
    if network == 'default':
        return '0.0.0.0', '0.0.0.0'
    prefix, sep, mask = network.partition('/')
    if not sep or not _is_ipv4(prefix):
        return None
    if '.' in mask:
        if not _is_ipv4(mask):
            return None
        return prefix, mask
    if not mask.isdigit() or int(mask) > 32:
        return None
    return prefix, cidr_to_mask(int(mask))


# --- Static routes ---

ROUTE_RE = re.compile(r'^\s*ip\s+route\s+(\S+)\s+gateway\s+(.+?)\s*$')
ROUTE_KEYWORDS = ('weight', 'filter', 'hide', 'keepalive', 'name')


def _parse_hop(clause):
    """Decodes one ``gateway`` clause into a next-hop record."""
    hop = {'next_hop': '', 'interface': '', 'distance': 1, 'name': '', 'permanent': False, 'filter': 0}
    tokens = clause.split()
    if not tokens:
        return hop

    i = 0
    first = tokens[0]
    if first in ('pp', 'tunnel', 'dhcp') and len(tokens) > 1:
        hop['interface'] = f"{first} {tokens[1]}"
        i = 2
    elif first in ('null', 'loopback'):
        hop['interface'] = first
        i = 1
    elif _is_ip(first):
        hop['next_hop'] = first
        i = 1
    else:
        hop['interface'] = first
        i = 1

    while i < len(tokens):
        tok = tokens[i]
        if tok in ('weight', 'filter') and i + 1 < len(tokens):
            value = tokens[i + 1]
            if value.isdigit():
                hop['distance' if tok == 'weight' else 'filter'] = int(value)
            else:
                _warn(f"Ignoring non-numeric {tok} '{value}' in route gateway '{clause}'")
            i += 2
        elif tok == 'hide':
            hop['permanent'] = False
            i += 1
        elif tok == 'keepalive':
            hop['permanent'] = True
            i += 1
        elif tok == 'name' and i + 1 < len(tokens):
            i += 1
            name_parts = []
            while i < len(tokens) and tokens[i] not in ROUTE_KEYWORDS:
                name_parts.append(tokens[i])
                i += 1
            hop['name'] = ' '.join(name_parts)
        else:
            i += 1
    return hop


def _on_route(routes, m):
    network, gateways = m.group(1), m.group(2)
    parsed = parse_network(network)
    if parsed is None:
        _warn(f"Skipping route with invalid network '{network}'")
        return
    prefix, mask = parsed
    route = routes.setdefault(f"{prefix}/{mask}", {'prefix': prefix, 'mask': mask, 'next_hops': []})
    # ECMP: several gateway clauses on one line
    for part in gateways.split(' gateway '):
        part = part.strip()
        if part:
            route['next_hops'].append(_parse_hop(part))


STATIC_ROUTE_RULES = [
    (ROUTE_RE, _on_route),
]


def parse_static_routes(raw):
    """Decodes ``ip route`` statements into routes grouped by prefix/mask, in first-seen order."""
    routes = _apply_rules(raw, STATIC_ROUTE_RULES, {})
    return list(routes.values())


# --- DNS ---

DNS_RECORD_TYPES = ('a', 'aaaa', 'ptr', 'mx', 'ns', 'cname', 'any')
DNS_SELECT_MAX_SERVERS = 2


def _join_continuations(raw):
    """Rejoins lines the router wrapped; a wrapped tail starts with '='."""
    joined = []
    for line in (raw or '').replace('\r\n', '\n').replace('\r', '\n').split('\n'):
        stripped = line.strip()
        if stripped.startswith('=') and joined:
            joined[-1] = joined[-1].rstrip() + stripped
        else:
            joined.append(line)
    return '\n'.join(joined)


def _is_ip_or_range(value):
    if '/' in value:
        addr, _, _ = value.partition('/')
        return _is_ip(addr)
    if '-' in value:
        start, _, end = value.partition('-')
        return _is_ip(start) and _is_ip(end)
    return _is_ip(value)


def parse_dns_server_select(select_id, rest):
    """Decodes the fields after ``dns server select <id>``.

    Field order is fixed: up to two servers (each optionally followed by
    ``edns=on|off``), an optional record type, the query pattern, an
    optional original-sender address and an optional ``restrict pp N``.
    Returns None when no server or no query pattern is present.
    """
    fields = rest.split()
    sel = {'id': select_id, 'servers': [], 'record_type': '', 'query_pattern': '',
           'original_sender': '', 'restrict_pp': 0}
    i = 0
    while i < len(fields) and len(sel['servers']) < DNS_SELECT_MAX_SERVERS and _is_ip(fields[i]):
        server = {'address': fields[i], 'edns': False}
        i += 1
        if i < len(fields) and fields[i] in ('edns=on', 'edns=off'):
            server['edns'] = fields[i] == 'edns=on'
            i += 1
        sel['servers'].append(server)
    if not sel['servers']:
        return None

    if i < len(fields) and fields[i] in DNS_RECORD_TYPES:
        sel['record_type'] = fields[i]
        i += 1
    if i >= len(fields):
        return None
    sel['query_pattern'] = fields[i]
    i += 1

    if i < len(fields) and _is_ip_or_range(fields[i]):
        sel['original_sender'] = fields[i]
        i += 1
    if fields[i:i + 2] == ['restrict', 'pp'] and i + 2 < len(fields):
        if fields[i + 2].isdigit():
            sel['restrict_pp'] = int(fields[i + 2])
        else:
            _warn(f"Ignoring invalid restrict pp '{fields[i + 2]}' in dns server select {select_id}")
    return sel


def _on_dns_select(config, m):
    sel = parse_dns_server_select(int(m.group(1)), m.group(2))
    if sel is not None:
        config['server_select'].append(sel)


def _on_dns_domain(config, m):
    if m.group(1) != 'lookup':
        config['domain_name'] = m.group(1)


DNS_RULES = [
    (re.compile(r'^\s*dns\s+domain\s+lookup\s+(on|off)\s*$'),
     lambda c, m: c.update(domain_lookup=_on_off(m.group(1)))),
    (re.compile(r'^\s*no\s+dns\s+domain\s+lookup\s*$'),
     lambda c, m: c.update(domain_lookup=False)),
    (re.compile(r'^\s*dns\s+service\s+(on|off|recursive)\s*$'),
     lambda c, m: c.update(service_on=m.group(1) in ('on', 'recursive'))),
    (re.compile(r'^\s*dns\s+private\s+address\s+spoof\s+(on|off)\s*$'),
     lambda c, m: c.update(private_spoof=_on_off(m.group(1)))),
    # select must be tried before the plain server rule
    (re.compile(r'^\s*dns\s+server\s+select\s+(\d+)\s+(.+?)\s*$'), _on_dns_select),
    (re.compile(r'^\s*dns\s+server\s+(\S+)(?:\s+(\S+))?(?:\s+(\S+))?\s*$'),
     lambda c, m: c['name_servers'].extend(s for s in m.groups() if s)),
    (re.compile(r'^\s*dns\s+domain\s+(\S+)\s*$'), _on_dns_domain),
    (re.compile(r'^\s*dns\s+static\s+(\S+)\s+(\S+)\s*$'),
     lambda c, m: c['hosts'].append({'name': m.group(1), 'address': m.group(2)})),
]


def parse_dns_config(raw):
    """Decodes ``dns ...`` statements. Domain lookup defaults to on."""
    config = {
        'domain_lookup': True,
        'domain_name': '',
        'name_servers': [],
        'server_select': [],
        'hosts': [],
        'service_on': False,
        'private_spoof': False,
    }
    return _apply_rules(_join_continuations(raw), DNS_RULES, config)


# --- NAT masquerade ---

def _descriptor(descriptors, descriptor_id):
    return descriptors.setdefault(int(descriptor_id), {
        'descriptor_id': int(descriptor_id),
        'outer_address': '',
        'inner_network': '',
        'static_entries': [],
    })


def _on_nat_static(descriptors, m):
    desc = _descriptor(descriptors, m.group(1))
    desc['static_entries'].append({
        'entry_number': int(m.group(2)),
        'outside_global': m.group(3),
        'outside_global_port': int(m.group(4)),
        'inside_local': m.group(5),
        'inside_local_port': int(m.group(6)),
        'protocol': (m.group(7) or '').lower(),
    })


def _on_nat_static_short(descriptors, m):
    """Inside host, protocol and one port shared by both sides; the outer address is the descriptor's."""
    desc = _descriptor(descriptors, m.group(1))
    port = int(m.group(5))
    desc['static_entries'].append({
        'entry_number': int(m.group(2)),
        'outside_global': '',
        'outside_global_port': port,
        'inside_local': m.group(3),
        'inside_local_port': port,
        'protocol': m.group(4).lower(),
    })


NAT_MASQUERADE_RULES = [
    (re.compile(r'^\s*nat\s+descriptor\s+type\s+(\d+)\s+masquerade\s*$'),
     lambda d, m: _descriptor(d, m.group(1))),
    (re.compile(r'^\s*nat\s+descriptor\s+address\s+outer\s+(\d+)\s+(\S+)\s*$'),
     lambda d, m: _descriptor(d, m.group(1)).update(outer_address=m.group(2))),
    (re.compile(r'^\s*nat\s+descriptor\s+address\s+inner\s+(\d+)\s+(\S+)\s*$'),
     lambda d, m: _descriptor(d, m.group(1)).update(inner_network=m.group(2))),
    # nat descriptor masquerade static 1 1 203.0.113.1:80=192.168.1.100:8080 tcp
    (re.compile(r'^\s*nat\s+descriptor\s+masquerade\s+static\s+(\d+)\s+(\d+)\s+([^:\s]+):(\d+)=([^:\s]+):(\d+)(?:\s+(\S+))?\s*$'),
     _on_nat_static),
    # nat descriptor masquerade static 1000 1 192.0.2.253 tcp 22
    (re.compile(r'^\s*nat\s+descriptor\s+masquerade\s+static\s+(\d+)\s+(\d+)\s+(\S+)\s+(tcp|udp|TCP|UDP)\s+(\d+)\s*$'),
     _on_nat_static_short),
]


def parse_nat_masquerade(raw):
    """Decodes ``nat descriptor`` statements into descriptors in first-seen order."""
    descriptors = _apply_rules(raw, NAT_MASQUERADE_RULES, {})
    return list(descriptors.values())


# --- Syslog ---

SYSLOG_RULES = [
    (re.compile(r'^\s*syslog\s+host\s+(\S+)\s+(\d+)\s*$'),
     lambda c, m: c['hosts'].append({'address': m.group(1), 'port': int(m.group(2))})),
    (re.compile(r'^\s*syslog\s+host\s+(\S+)\s*$'),
     lambda c, m: c['hosts'].append({'address': m.group(1), 'port': 0})),
    (re.compile(r'^\s*syslog\s+local\s+address\s+(\S+)\s*$'),
     lambda c, m: c.update(local_address=m.group(1))),
    (re.compile(r'^\s*syslog\s+facility\s+(\S+)\s*$'),
     lambda c, m: c.update(facility=m.group(1))),
    (re.compile(r'^\s*syslog\s+(notice|info|debug)\s+(on|off)\s*$'),
     lambda c, m: c.update({m.group(1): _on_off(m.group(2))})),
]


def parse_syslog_config(raw):
    """Decodes ``syslog`` statements. Port 0 means the default (514)."""
    config = {'hosts': [], 'local_address': '', 'facility': '',
              'notice': False, 'info': False, 'debug': False}
    return _apply_rules(raw, SYSLOG_RULES, config)


# --- System ---

def _console(config):
    if config['console'] is None:
        config['console'] = {'character': '', 'lines': '', 'prompt': ''}
    return config['console']


def _statistics(config):
    if config['statistics'] is None:
        config['statistics'] = {'traffic': False, 'nat': False}
    return config['statistics']


SYSTEM_RULES = [
    (re.compile(r'^\s*timezone\s+([+\-]?\d{2}:\d{2})\s*$'),
     lambda c, m: c.update(timezone=m.group(1))),
    (re.compile(r'^\s*console\s+(character|lines)\s+(\S+)\s*$'),
     lambda c, m: _console(c).update({m.group(1): m.group(2)})),
    (re.compile(r'^\s*console\s+prompt\s+"?([^"]*)"?\s*$'),
     lambda c, m: _console(c).update(prompt=m.group(1))),
    (re.compile(r'^\s*system\s+packet-buffer\s+(small|middle|large)\s+max-buffer=(\d+)\s+max-free=(\d+)\s*$'),
     lambda c, m: c['packet_buffers'].append({'size': m.group(1),
                                               'max_buffer': int(m.group(2)),
                                               'max_free': int(m.group(3))})),
    (re.compile(r'^\s*statistics\s+(traffic|nat)\s+(on|off)\s*$'),
     lambda c, m: _statistics(c).update({m.group(1): _on_off(m.group(2))})),
]


def parse_system_config(raw):
    """Decodes timezone, console, packet-buffer and statistics statements."""
    config = {'timezone': '', 'console': None, 'packet_buffers': [], 'statistics': None}
    return _apply_rules(raw, SYSTEM_RULES, config)


# --- Tunnels ---

def _new_tunnel(tunnel_id):
    return {
        'id': tunnel_id,
        'description': '',
        'encapsulation': '',
        'enabled': False,
        'endpoint_local': '',
        'endpoint_remote': '',
        'endpoint_name': '',
        'endpoint_name_type': '',
        'ipsec_tunnels': [],
        'sa_policies': [],
        'ike': {},
        'secure_filter_in': [],
        'secure_filter_out': [],
        'tcp_mss_limit': '',
        'l2tp': {},
    }


class _TunnelState:
    """Tunnels seen so far plus the one statements currently apply to."""
    def __init__(self):
        self.tunnels = {}
        self.current = None

    def select(self, tunnel_id):
        self.current = self.tunnels.setdefault(tunnel_id, _new_tunnel(tunnel_id))

    def ike(self, gateway_id):
        return self.current['ike'].setdefault(int(gateway_id), {
            'local_address': '', 'remote_address': '', 'pre_shared_key': '',
            'encryption': '', 'hash': '', 'group': '', 'keepalive': None,
        })


def _tunnel_rule(handler):
    """Ignores statements that appear before any ``tunnel select``."""
    def wrapped(state, m):
        if state.current is not None:
            handler(state, m)
    return wrapped


def _on_tunnel_enable(state, m):
    tunnel_id = int(m.group(1))
    if tunnel_id not in state.tunnels:
        state.tunnels[tunnel_id] = _new_tunnel(tunnel_id)
    state.tunnels[tunnel_id]['enabled'] = True


def _on_ipsec_tunnel(state, m):
    ipsec_id = int(m.group(1))
    if ipsec_id not in state.current['ipsec_tunnels']:
        state.current['ipsec_tunnels'].append(ipsec_id)


def _on_sa_policy(state, m):
    state.current['sa_policies'].append({
        'policy_id': int(m.group(1)),
        'gateway_id': int(m.group(2)),
        'protocol': m.group(3),
        'algorithms': m.group(4).split(),
    })


def _on_ike_keepalive(state, m):
    state.ike(m.group(1))['keepalive'] = {
        'mode': m.group(2),
        'interval': int(m.group(3)),
        'retry': int(m.group(4)) if m.group(4) else 0,
    }


def _on_secure_filter(state, m):
    numbers = []
    for token in m.group(2).split():
        if token.isdigit():
            numbers.append(int(token))
        elif token != 'dynamic':
            _warn(f"Ignoring non-numeric filter '{token}' in tunnel {state.current['id']}")
    state.current[f"secure_filter_{m.group(1)}"].extend(numbers)


def _on_l2tp_keepalive(state, m):
    state.current['l2tp']['keepalive'] = {'interval': int(m.group(1)), 'retry': int(m.group(2))}


TUNNEL_RULES = [
    (re.compile(r'^\s*tunnel\s+select\s+(\d+)\s*$'), lambda s, m: s.select(int(m.group(1)))),
    (re.compile(r'^\s*tunnel\s+enable\s+(\d+)\s*$'), _on_tunnel_enable),
    (re.compile(r'^\s*tunnel\s+encapsulation\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(encapsulation=m.group(1)))),
    (re.compile(r'^\s*tunnel\s+endpoint\s+address\s+(\S+)\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(endpoint_local=m.group(1), endpoint_remote=m.group(2)))),
    (re.compile(r'^\s*tunnel\s+endpoint\s+address\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(endpoint_remote=m.group(1)))),
    (re.compile(r'^\s*tunnel\s+endpoint\s+name\s+(\S+)(?:\s+(fqdn|ip))?\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(endpoint_name=m.group(1), endpoint_name_type=m.group(2) or ''))),
    (re.compile(r'^\s*description\s+(.+?)\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(description=m.group(1)))),
    (re.compile(r'^\s*ipsec\s+tunnel\s+(\d+)\s*$'), _tunnel_rule(_on_ipsec_tunnel)),
    (re.compile(r'^\s*ipsec\s+sa\s+policy\s+(\d+)\s+(\d+)\s+(\w+)\s+(.+?)\s*$'), _tunnel_rule(_on_sa_policy)),
    (re.compile(r'^\s*ipsec\s+ike\s+local\s+address\s+(\d+)\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.ike(m.group(1)).update(local_address=m.group(2)))),
    (re.compile(r'^\s*ipsec\s+ike\s+remote\s+address\s+(\d+)\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.ike(m.group(1)).update(remote_address=m.group(2)))),
    (re.compile(r'^\s*ipsec\s+ike\s+pre-shared-key\s+(\d+)\s+text\s+(.+?)\s*$'),
     _tunnel_rule(lambda s, m: s.ike(m.group(1)).update(pre_shared_key=m.group(2)))),
    (re.compile(r'^\s*ipsec\s+ike\s+(encryption|hash|group)\s+(\d+)\s+(.+?)\s*$'),
     _tunnel_rule(lambda s, m: s.ike(m.group(2)).update({m.group(1): m.group(3)}))),
    (re.compile(r'^\s*ipsec\s+ike\s+keepalive\s+use\s+(\d+)\s+on\s+(dpd|heartbeat)\s+(\d+)(?:\s+(\d+))?\s*$'),
     _tunnel_rule(_on_ike_keepalive)),
    (re.compile(r'^\s*ip\s+tunnel\s+secure\s+filter\s+(in|out)\s+(.+?)\s*$'), _tunnel_rule(_on_secure_filter)),
    (re.compile(r'^\s*ip\s+tunnel\s+tcp\s+mss\s+limit\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.current.update(tcp_mss_limit=m.group(1)))),
    (re.compile(r'^\s*l2tp\s+(hostname|remote\s+end-id)\s+(\S+)\s*$'),
     _tunnel_rule(lambda s, m: s.current['l2tp'].update({m.group(1).replace(' ', '_').replace('-', '_'): m.group(2)}))),
    (re.compile(r'^\s*l2tp\s+(local|remote)\s+router-id\s+([0-9.]+)\s*$'),
     _tunnel_rule(lambda s, m: s.current['l2tp'].update({f"{m.group(1)}_router_id": m.group(2)}))),
    (re.compile(r'^\s*l2tp\s+(always-on|syslog)\s+(on|off)\s*$'),
     _tunnel_rule(lambda s, m: s.current['l2tp'].update({m.group(1).replace('-', '_'): _on_off(m.group(2))}))),
    (re.compile(r'^\s*l2tp\s+tunnel\s+auth\s+(on|off)(?:\s+(\S+))?\s*$'),
     _tunnel_rule(lambda s, m: s.current['l2tp'].update(tunnel_auth={'enabled': _on_off(m.group(1)),
                                                                     'password': m.group(2) or ''}))),
    (re.compile(r'^\s*l2tp\s+keepalive\s+use\s+on\s+(\d+)\s+(\d+)\s*$'), _tunnel_rule(_on_l2tp_keepalive)),
]


def parse_tunnel_config(raw):
    """Decodes one or more ``tunnel select N`` sections into tunnel records.

    Statements before the first ``tunnel select`` are ignored, except
    ``tunnel enable N`` which may name any tunnel. A tunnel carrying IPsec
    tunnels but no explicit encapsulation is reported as ``ipsec``.
    """
    state = _apply_rules(raw, TUNNEL_RULES, _TunnelState())
    for tunnel in state.tunnels.values():
        if not tunnel['encapsulation'] and tunnel['ipsec_tunnels']:
            tunnel['encapsulation'] = 'ipsec'
    return list(state.tunnels.values())


# --- PP peers ---

def _new_peer(pp_id, name=''):
    return {
        'id': pp_id,
        'name': name,
        'description': '',
        'bind': '',
        'pppoe_use': '',
        'auth_accept': '',
        'auth_request': '',
        'auth_myname': None,
        'auth_users': [],
        'always_on': None,
        'ip_address': '',
        'mtu': 0,
        'nat_descriptor': 0,
        'remote_address_pool': '',
        'enabled': False,
    }


def peer_key(pp_id, name=''):
    """Key of a peer in RouterModel.peers: its name if it has one, else its number."""
    return name or str(pp_id)


class _PeerState:
    def __init__(self):
        self.peers = {}
        self.current = None

    def select(self, pp_id, name=''):
        key = peer_key(pp_id, name)
        self.current = self.peers.setdefault(key, _new_peer(pp_id, name))


def _peer_rule(handler):
    def wrapped(state, m):
        if state.current is not None:
            handler(state, m)
    return wrapped


def _on_pp_enable(state, m):
    ref = m.group(1)
    pp_id, name = (0, ref) if ref == 'anonymous' else (int(ref), '')
    key = peer_key(pp_id, name)
    if key not in state.peers:
        state.peers[key] = _new_peer(pp_id, name)
    state.peers[key]['enabled'] = True


PP_RULES = [
    (re.compile(r'^\s*pp\s+select\s+anonymous\s*$'), lambda s, m: s.select(0, 'anonymous')),
    (re.compile(r'^\s*pp\s+select\s+(\d+)\s*$'), lambda s, m: s.select(int(m.group(1)))),
    (re.compile(r'^\s*pp\s+enable\s+(\d+|anonymous)\s*$'), _on_pp_enable),
    (re.compile(r'^\s*description\s+(?:pp\s+)?(.+?)\s*$'),
     _peer_rule(lambda s, m: s.current.update(description=m.group(1)))),
    (re.compile(r'^\s*pp\s+bind\s+(.+?)\s*$'),
     _peer_rule(lambda s, m: s.current.update(bind=m.group(1)))),
    (re.compile(r'^\s*pppoe\s+use\s+(\S+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(pppoe_use=m.group(1)))),
    (re.compile(r'^\s*pp\s+auth\s+(accept|request)\s+(.+?)\s*$'),
     _peer_rule(lambda s, m: s.current.update({f"auth_{m.group(1)}": m.group(2)}))),
    (re.compile(r'^\s*pp\s+auth\s+myname\s+(\S+)\s+(\S+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(auth_myname={'username': m.group(1), 'password': m.group(2)}))),
    (re.compile(r'^\s*pp\s+auth\s+username\s+(\S+)\s+(\S+)(?:\s+(.+?))?\s*$'),
     _peer_rule(lambda s, m: s.current['auth_users'].append({'username': m.group(1), 'password': m.group(2)}))),
    (re.compile(r'^\s*pp\s+always-on\s+(on|off)\s*$'),
     _peer_rule(lambda s, m: s.current.update(always_on=_on_off(m.group(1))))),
    (re.compile(r'^\s*ip\s+pp\s+address\s+(\S+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(ip_address=m.group(1)))),
    (re.compile(r'^\s*ip\s+pp\s+mtu\s+(\d+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(mtu=int(m.group(1))))),
    (re.compile(r'^\s*ip\s+pp\s+nat\s+descriptor\s+(\d+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(nat_descriptor=int(m.group(1))))),
    (re.compile(r'^\s*ip\s+pp\s+remote\s+address\s+pool\s+(\S+)\s*$'),
     _peer_rule(lambda s, m: s.current.update(remote_address_pool=m.group(1)))),
]


def parse_pp_config(raw):
    """Decodes ``pp select`` sections into peer records keyed as in RouterModel.peers."""
    state = _apply_rules(raw, PP_RULES, _PeerState())
    return list(state.peers.values())


# --- Interfaces ---

INTERFACE_NAME = r'(lan\d+|bridge\d+|pp\d+|tunnel\d+)'


def _new_interface(name):
    return {
        'name': name,
        'description': '',
        'address': '',
        'dhcp': False,
        'secure_filter_in': [],
        'secure_filter_out': [],
        'dynamic_filter_out': [],
        'ethernet_filter_in': [],
        'ethernet_filter_out': [],
        'nat_descriptor': 0,
        'proxyarp': None,
        'mtu': 0,
    }


def _interface(interfaces, name):
    return interfaces.setdefault(name, _new_interface(name))


def _filter_numbers(tokens):
    """Positive filter numbers among ``tokens``; anything else is dropped."""
    return [int(t) for t in tokens if t.isdigit() and int(t) > 0]


def _on_interface_address(interfaces, m):
    iface = _interface(interfaces, m.group(1))
    if m.group(2) == 'dhcp':
        iface['dhcp'] = True
    else:
        iface['address'] = m.group(2)


def _on_interface_secure_filter(interfaces, m):
    iface = _interface(interfaces, m.group(1))
    tokens = m.group(3).split()
    if m.group(2) == 'in':
        iface['secure_filter_in'] = _filter_numbers(tokens)
        return
    # ip lan2 secure filter out 200099 dynamic 200080 200081
    if 'dynamic' in tokens:
        split = tokens.index('dynamic')
        iface['secure_filter_out'] = _filter_numbers(tokens[:split])
        iface['dynamic_filter_out'] = _filter_numbers(tokens[split + 1:])
    else:
        iface['secure_filter_out'] = _filter_numbers(tokens)


INTERFACE_RULES = [
    (re.compile(r'^\s*ip\s+' + INTERFACE_NAME + r'\s+address\s+(\S+)\s*$'), _on_interface_address),
    (re.compile(r'^\s*ip\s+' + INTERFACE_NAME + r'\s+secure\s+filter\s+(in|out)\s+(.+?)\s*$'),
     _on_interface_secure_filter),
    (re.compile(r'^\s*ethernet\s+' + INTERFACE_NAME + r'\s+filter\s+(in|out)\s+(.+?)\s*$'),
     lambda d, m: _interface(d, m.group(1)).update({f"ethernet_filter_{m.group(2)}": _filter_numbers(m.group(3).split())})),
    (re.compile(r'^\s*ip\s+' + INTERFACE_NAME + r'\s+nat\s+descriptor\s+(\d+)\s*$'),
     lambda d, m: _interface(d, m.group(1)).update(nat_descriptor=int(m.group(2)))),
    (re.compile(r'^\s*ip\s+' + INTERFACE_NAME + r'\s+proxyarp\s+(on|off)\s*$'),
     lambda d, m: _interface(d, m.group(1)).update(proxyarp=_on_off(m.group(2)))),
    (re.compile(r'^\s*ip\s+' + INTERFACE_NAME + r'\s+mtu\s+(\d+)\s*$'),
     lambda d, m: _interface(d, m.group(1)).update(mtu=int(m.group(2)))),
    (re.compile(r'^\s*description\s+' + INTERFACE_NAME + r'\s+(?:"([^"]*)"|(.+?))\s*$'),
     lambda d, m: _interface(d, m.group(1)).update(description=m.group(2) if m.group(2) is not None else m.group(3))),
]


def parse_interface_config(raw):
    """Decodes global ``ip IF ...``, ``ethernet IF filter`` and ``description IF`` statements.

    Returns interface records keyed by name, in first-seen order. An address
    of ``dhcp`` sets the ``dhcp`` flag instead of the address.
    """
    return _apply_rules(raw, INTERFACE_RULES, {})


# --- IP filters ---

IP_FILTER_ACTIONS = ('pass', 'reject', 'restrict', 'restrict-log', 'pass-log', 'reject-log', 'restrict-nolog',
                     'pass-nolog', 'reject-nolog')


def _on_ip_filter(filters, m):
    number = int(m.group(1))
    if not 1 <= number <= 2147483647:
        _warn(f"Skipping ip filter with out-of-range number {number}")
        return
    if m.group(2) not in IP_FILTER_ACTIONS:
        _warn(f"Unknown action '{m.group(2)}' in ip filter {number}")
    ports = [p for p in (m.group(6), m.group(7), m.group(8)) if p and p != 'established']
    filters.append({
        'number': number,
        'action': m.group(2),
        'source_address': m.group(3),
        'dest_address': m.group(4),
        'protocol': m.group(5),
        'source_port': ports[0] if ports else '',
        'dest_port': ports[1] if len(ports) > 1 else '',
        'established': 'established' in (m.group(6), m.group(7), m.group(8)),
    })


IP_FILTER_RULES = [
    (re.compile(r'^\s*ip\s+filter\s+dynamic\s+'), lambda f, m: None),
    # ip filter <n> <action> <src> <dst> <proto> [<src port>] [<dst port>] [established]
    (re.compile(r'^\s*ip\s+filter\s+(\d+)\s+(\S+)\s+(\S+)\s+(\S+)\s+(\S+)'
                r'(?:\s+(\S+))?(?:\s+(\S+))?(?:\s+(\S+))?\s*$'), _on_ip_filter),
]


def parse_ip_filters(raw):
    """Decodes static ``ip filter`` statements in source order. Dynamic filters are skipped."""
    return _apply_rules(raw, IP_FILTER_RULES, [])


# --- DHCP scopes ---

DHCP_OPTION_KEYWORDS = ('gateway', 'dns', 'lease', 'domain', 'expire', 'maxexpire', 'ma')


def parse_lease_time(value):
    """'12:00' (hh:mm) or '1440' (minutes) -> seconds; None when malformed."""
    hours, sep, minutes = value.partition(':')
    if sep:
        if not (hours.isdigit() and minutes.isdigit()) or int(minutes) >= 60:
            return None
        return (int(hours) * 60 + int(minutes)) * 60
    if not value.isdigit():
        return None
    return int(value) * 60


def _parse_dhcp_range(scope, clause):
    """Fills range_start/range_end/prefix from ``START-END/PREFIX``. Returns False if malformed."""
    addresses, sep, prefix = clause.partition('/')
    if not sep or not prefix.isdigit() or int(prefix) > 32:
        return False
    start, sep, end = addresses.partition('-')
    if not sep or not (_is_ip(start) and _is_ip(end)):
        return False
    scope.update(range_start=start, range_end=end, prefix=int(prefix))
    return True


def _parse_dhcp_options(scope, tokens):
    i = 0
    while i < len(tokens):
        tok = tokens[i]
        value = tokens[i + 1] if i + 1 < len(tokens) else None
        if tok == 'gateway' and value is not None:
            if _is_ip(value):
                scope['gateway'] = value
            else:
                _warn(f"Ignoring invalid gateway '{value}' in dhcp scope {scope['scope_id']}")
            i += 2
        elif tok == 'dns':
            i += 1
            while i < len(tokens) and tokens[i] not in DHCP_OPTION_KEYWORDS:
                if _is_ip(tokens[i]):
                    scope['dns_servers'].append(tokens[i])
                i += 1
        elif tok == 'lease' and value is not None:
            if value.isdigit():
                scope['lease'] = int(value)
            i += 2
        elif tok == 'domain' and value is not None:
            scope['domain_name'] = value
            i += 2
        elif tok in ('expire', 'maxexpire') and value is not None:
            seconds = parse_lease_time(value)
            if seconds is None:
                _warn(f"Ignoring invalid {tok} '{value}' in dhcp scope {scope['scope_id']}")
            else:
                scope['lease' if tok == 'expire' else 'max_lease'] = seconds
            i += 2
        else:
            i += 1


def _on_dhcp_scope(scopes, m):
    scope_id = int(m.group(1))
    scope = {'scope_id': scope_id, 'range_start': '', 'range_end': '', 'prefix': 0, 'gateway': '',
             'dns_servers': [], 'lease': 0, 'max_lease': 0, 'domain_name': ''}
    if scope_id <= 0 or not _parse_dhcp_range(scope, m.group(2)):
        _warn(f"Skipping dhcp scope {scope_id} with invalid range '{m.group(2)}'")
        return
    _parse_dhcp_options(scope, m.group(3).split())
    scopes.append(scope)


DHCP_SCOPE_RULES = [
    (re.compile(r'^\s*dhcp\s+scope\s+(\d+)\s+(\S+)\s*(.*)$'), _on_dhcp_scope),
]


def parse_dhcp_scopes(raw):
    """Decodes ``dhcp scope <id> START-END/PREFIX [options]`` statements.

    ``expire`` and ``maxexpire`` are stored in seconds as ``lease`` and
    ``max_lease``. Unknown options are ignored.
    """
    return _apply_rules(raw, DHCP_SCOPE_RULES, [])


# --- Administration ---

def _new_user(username):
    return {'username': username, 'password': '', 'encrypted': False,
            'attributes': {'administrator': None, 'connection': [], 'gui_pages': [], 'login_timer': None}}


def _user(config, username):
    for user in config['users']:
        if user['username'] == username:
            return user
    user = _new_user(username)
    config['users'].append(user)
    return user


def parse_user_attributes(clause):
    """Decodes the ``key=value`` fields of ``user attribute``.

    The router leaves ``administrator`` out when it has its default value,
    which is on.
    """
    attrs = {'administrator': True, 'connection': [], 'gui_pages': [], 'login_timer': None}
    for part in clause.split():
        key, _, value = part.partition('=')
        if key == 'administrator':
            attrs['administrator'] = value in ('on', '1', '2')
        elif key in ('connection', 'gui-page'):
            if value and value != 'none':
                attrs['connection' if key == 'connection' else 'gui_pages'] = value.split(',')
        elif key == 'login-timer':
            if value.isdigit():
                attrs['login_timer'] = int(value)
            else:
                _warn(f"Ignoring invalid login-timer '{value}'")
    return attrs


def _on_login_user(config, m, encrypted):
    user = _user(config, m.group(1))
    user.update(password=m.group(2), encrypted=encrypted)


ADMIN_RULES = [
    (re.compile(r'^\s*login\s+password\s+(.+?)\s*$'),
     lambda c, m: c.update(login_password=m.group(1))),
    (re.compile(r'^\s*administrator\s+password\s+(.+?)\s*$'),
     lambda c, m: c.update(admin_password=m.group(1))),
    # encrypted form must be tried before the plaintext one
    (re.compile(r'^\s*login\s+user\s+(\S+)\s+encrypted\s+(\S+)\s*$'),
     lambda c, m: _on_login_user(c, m, True)),
    (re.compile(r'^\s*login\s+user\s+(\S+)\s+(.+?)\s*$'),
     lambda c, m: _on_login_user(c, m, False)),
    (re.compile(r'^\s*user\s+attribute\s+(\S+)\s+(.+?)\s*$'),
     lambda c, m: _user(c, m.group(1)).update(attributes=parse_user_attributes(m.group(2)))),
]


def parse_admin_config(raw):
    """Decodes login/administrator passwords, login users and their attributes.

    Users are listed in first-seen order; a ``user attribute`` line for an
    unknown user creates a user without a password.
    """
    config = {'login_password': '', 'admin_password': '', 'users': []}
    return _apply_rules(raw, ADMIN_RULES, config)
