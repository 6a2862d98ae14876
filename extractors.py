#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Selection helpers over a classified statement stream, and the extract_*
functions that feed selected statements to the section decoders.
"""
import re

import decoders
from config_model import ContextKind, RouterModel


# --- Predicates ---

def no_context():
    """Matches statements outside any context."""
    return lambda s: s.context is None


def in_context(context):
    """Matches statements attributed to ``context``."""
    return lambda s: s.context == context


def with_prefix(*prefixes, exclude=()):
    """Matches statements whose text starts with any of ``prefixes`` and none of ``exclude``."""
    def predicate(s):
        if exclude and s.text.startswith(tuple(exclude)):
            return False
        return s.text.startswith(prefixes)
    return predicate


def all_of(*predicates):
    return lambda s: all(p(s) for p in predicates)


def select(statements, predicate):
    """Returns the texts of the statements matching ``predicate``, in source order."""
    return [s.text for s in statements if predicate(s)]


def _global_text(parsed, *prefixes, exclude=()):
    return '\n'.join(select(parsed.statements, all_of(no_context(), with_prefix(*prefixes, exclude=exclude))))


# --- Global sections ---

def extract_static_routes(parsed):
    raw = _global_text(parsed, 'ip route ')
    return decoders.parse_static_routes(raw) if raw else []


def extract_dns(parsed):
    raw = _global_text(parsed, 'dns ', 'no dns ')
    return decoders.parse_dns_config(raw) if raw else None


def extract_nat_masquerade(parsed):
    raw = _global_text(parsed, 'nat descriptor ')
    return decoders.parse_nat_masquerade(raw) if raw else []


def extract_syslog(parsed):
    raw = _global_text(parsed, 'syslog ')
    return decoders.parse_syslog_config(raw) if raw else None


def extract_system(parsed):
    raw = _global_text(parsed, 'timezone ', 'console ', 'system packet-buffer ', 'statistics ')
    return decoders.parse_system_config(raw) if raw else None


def extract_interfaces(parsed):
    raw = _global_text(parsed, 'ip lan', 'ip bridge', 'ip pp', 'ip tunnel', 'ethernet ', 'description ')
    return decoders.parse_interface_config(raw) if raw else {}


def extract_ip_filters(parsed):
    raw = _global_text(parsed, 'ip filter ', exclude=('ip filter dynamic ',))
    return decoders.parse_ip_filters(raw) if raw else []


def extract_dhcp_scopes(parsed):
    raw = _global_text(parsed, 'dhcp scope ')
    return decoders.parse_dhcp_scopes(raw) if raw else []


def extract_admin(parsed):
    raw = _global_text(parsed, 'login password ', 'administrator password ', 'login user ', 'user attribute ')
    return decoders.parse_admin_config(raw) if raw else None


# --- Context sections ---

def nested_ipsec_contexts(parsed):
    """Maps each tunnel context to the IPsec tunnel contexts entered inside it.

    Built from the (tunnel, ipsec tunnel) pairs the classifier recorded on
    entry, so a tunnel selected again later keeps its own IPsec tunnels.
    """
    nesting = {ctx: [] for ctx in parsed.contexts_of_kind(ContextKind.TUNNEL)}
    for tunnel, ipsec in parsed.ipsec_parents:
        nested = nesting.setdefault(tunnel, [])
        if ipsec not in nested:
            nested.append(ipsec)
    return nesting


def ipsec_owners(parsed):
    """Maps each IPsec tunnel context to the first tunnel it was entered under."""
    owners = {}
    for tunnel, ipsec in parsed.ipsec_parents:
        owners.setdefault(ipsec, tunnel)
    return owners


def _context_block(parsed, context):
    """Selector line followed by the context's own statements."""
    return [context.selector_line] + select(parsed.statements, in_context(context))


def extract_tunnels(parsed):
    """Decodes every tunnel context, including its nested IPsec tunnels.

    An IPsec tunnel entered under several tunnels is listed by each of them;
    its statements are decoded under the first one only.
    """
    nesting = nested_ipsec_contexts(parsed)
    if not nesting:
        return []
    owners = ipsec_owners(parsed)
    blocks = []
    for tunnel_ctx, ipsec_contexts in nesting.items():
        blocks.extend(_context_block(parsed, tunnel_ctx))
        for ipsec_ctx in ipsec_contexts:
            if owners.get(ipsec_ctx) == tunnel_ctx:
                blocks.extend(_context_block(parsed, ipsec_ctx))
            else:
                blocks.append(ipsec_ctx.selector_line)
    # tunnel enable statements live in the tunnel context, but may also appear globally
    blocks.extend(_global_text(parsed, 'tunnel enable ').splitlines())
    return decoders.parse_tunnel_config('\n'.join(blocks))


def extract_peers(parsed):
    peers = parsed.contexts_of_kind(ContextKind.PEER)
    if not peers:
        return []
    blocks = []
    for ctx in peers:
        blocks.extend(_context_block(parsed, ctx))
    blocks.extend(_global_text(parsed, 'pp enable ').splitlines())
    return decoders.parse_pp_config('\n'.join(blocks))


# --- Credentials ---

IPSEC_PSK_RE             = re.compile(r'^ipsec\s+ike\s+pre-shared-key\s+(\d+)\s+text\s+(\S+)$')
L2TP_AUTH_RE             = re.compile(r'^l2tp\s+tunnel\s+auth\s+on\s+(\S+)$')
PP_AUTH_USERNAME_RE      = re.compile(r'^pp\s+auth\s+username\s+(\S+)\s+(.+)$')


def extract_passwords(parsed):
    """Collects passwords and shared secrets found anywhere in the dump.

    Encrypted login users are listed without a password.
    """
    result = {
        'login_password': '',
        'admin_password': '',
        'users': [],
        'ipsec_psk': [],
        'l2tp_auth': [],
        'pp_auth': [],
    }

    admin = extract_admin(parsed)
    if admin is not None:
        result['login_password'] = admin['login_password']
        result['admin_password'] = admin['admin_password']
        for user in admin['users']:
            if user['encrypted']:
                result['users'].append({'username': user['username'], 'password': '', 'encrypted': True})
            elif user['password']:
                result['users'].append({'username': user['username'], 'password': user['password'],
                                        'encrypted': False})

    owner = ipsec_owners(parsed)
    for s in parsed.statements:
        m = L2TP_AUTH_RE.match(s.text)
        if m and s.context is not None:
            tunnel = owner.get(s.context, s.context)
            result['l2tp_auth'].append({'tunnel_id': tunnel.id, 'secret': m.group(1)})
            continue
        m = IPSEC_PSK_RE.match(s.text)
        if m:
            result['ipsec_psk'].append({'id': int(m.group(1)), 'secret': m.group(2)})
            continue
        m = PP_AUTH_USERNAME_RE.match(s.text)
        if m:
            pp = s.context.name or s.context.id if s.context is not None else None
            result['pp_auth'].append({'pp': pp, 'username': m.group(1), 'password': m.group(2)})

    if not any(result.values()):
        return None
    return result


def build_model(parsed):
    """Runs every extractor and collects the results in a RouterModel."""
    model = RouterModel()
    model.static_routes = extract_static_routes(parsed)
    model.dns = extract_dns(parsed) or {}
    model.nat_masquerade = extract_nat_masquerade(parsed)
    model.syslog = extract_syslog(parsed) or {}
    model.system = extract_system(parsed) or {}
    model.tunnels = {t['id']: t for t in extract_tunnels(parsed)}
    model.peers = {decoders.peer_key(p['id'], p['name']): p for p in extract_peers(parsed)}
    model.interfaces = extract_interfaces(parsed)
    model.ip_filters = extract_ip_filters(parsed)
    model.dhcp_scopes = extract_dhcp_scopes(parsed)
    model.admin = extract_admin(parsed) or {}
    model.credentials = extract_passwords(parsed) or {}
    model.source_statement_count = parsed.statement_count
    return model
