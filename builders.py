#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Command builders: format decoded records back into RTX statements.

Each builder is the inverse of the matching decoder for the fields the
record carries. Records missing a required field raise ValueError.
"""
from decoders import mask_to_cidr


def _require(record, *keys, what='record'):
    for key in keys:
        if record.get(key) in (None, ''):
            raise ValueError(f"{what} is missing required field '{key}'")


def _on_off(flag):
    return 'on' if flag else 'off'


def format_network(prefix, mask):
    """Renders a prefix/mask pair as ``default`` or CIDR notation."""
    if prefix == '0.0.0.0' and mask == '0.0.0.0':
        return 'default'
    prefix_len = mask_to_cidr(mask)
    if prefix_len is None:
        return f"{prefix}/{mask}"
    return f"{prefix}/{prefix_len}"


# --- Static routes ---

def _gateway(hop):
    gateway = hop.get('interface') or hop.get('next_hop')
    if not gateway:
        raise ValueError("next hop needs either 'interface' or 'next_hop'")
    return gateway


def build_ip_route_command(route, hop):
    """ip route <network> gateway <hop> [weight n] [filter n] [keepalive]"""
    _require(route, 'prefix', 'mask', what='route')
    cmd = f"ip route {format_network(route['prefix'], route['mask'])} gateway {_gateway(hop)}"
    if hop.get('distance', 1) > 1:
        cmd += f" weight {hop['distance']}"
    if hop.get('filter', 0) > 0:
        cmd += f" filter {hop['filter']}"
    if hop.get('permanent'):
        cmd += " keepalive"
    return cmd


def build_delete_ip_route_command(prefix, mask, hop=None):
    """no ip route <network> [gateway <hop>]; without a hop every gateway is removed."""
    cmd = f"no ip route {format_network(prefix, mask)}"
    if hop is not None:
        cmd += f" gateway {_gateway(hop)}"
    return cmd


def build_static_route_commands(route):
    """One ``ip route`` statement per next hop."""
    return [build_ip_route_command(route, hop) for hop in route.get('next_hops', [])]


# --- DNS ---

def build_dns_server_command(servers):
    if not servers:
        raise ValueError("dns server needs at least one address")
    return "dns server " + ' '.join(servers)


def build_dns_server_select_command(sel):
    """dns server select <id> <server> [edns=on] ... [type] <pattern> [sender] [restrict pp n]"""
    _require(sel, 'id', 'query_pattern', what='dns server select')
    if not sel.get('servers'):
        raise ValueError("dns server select needs at least one server")
    parts = ['dns server select', str(sel['id'])]
    for server in sel['servers']:
        parts.append(server['address'])
        if server.get('edns'):
            parts.append('edns=on')
    if sel.get('record_type') and sel['record_type'] != 'a':
        parts.append(sel['record_type'])
    parts.append(sel['query_pattern'])
    if sel.get('original_sender'):
        parts.append(sel['original_sender'])
    if sel.get('restrict_pp', 0) > 0:
        parts.extend(['restrict', 'pp', str(sel['restrict_pp'])])
    return ' '.join(parts)


def build_dns_static_command(host):
    _require(host, 'name', 'address', what='dns static host')
    return f"dns static {host['name']} {host['address']}"


def build_dns_service_command(enable):
    return "dns service recursive" if enable else "dns service off"


def build_dns_commands(config):
    """Full set of ``dns`` statements for a decoded DNS record."""
    commands = []
    commands.append("dns domain lookup on" if config.get('domain_lookup', True) else "no dns domain lookup")
    if config.get('domain_name'):
        commands.append(f"dns domain {config['domain_name']}")
    if config.get('name_servers'):
        commands.append(build_dns_server_command(config['name_servers']))
    for sel in config.get('server_select', []):
        commands.append(build_dns_server_select_command(sel))
    for host in config.get('hosts', []):
        commands.append(build_dns_static_command(host))
    commands.append(build_dns_service_command(config.get('service_on', False)))
    commands.append(f"dns private address spoof {_on_off(config.get('private_spoof', False))}")
    return commands


# --- NAT masquerade ---

def build_nat_masquerade_commands(descriptor):
    _require(descriptor, 'descriptor_id', what='nat descriptor')
    desc_id = descriptor['descriptor_id']
    commands = [f"nat descriptor type {desc_id} masquerade"]
    if descriptor.get('outer_address'):
        commands.append(f"nat descriptor address outer {desc_id} {descriptor['outer_address']}")
    if descriptor.get('inner_network'):
        commands.append(f"nat descriptor address inner {desc_id} {descriptor['inner_network']}")
    for entry in descriptor.get('static_entries', []):
        _require(entry, 'entry_number', 'inside_local', 'inside_local_port', what='masquerade static entry')
        if not entry.get('outside_global'):
            _require(entry, 'protocol', what='masquerade static entry')
            commands.append(f"nat descriptor masquerade static {desc_id} {entry['entry_number']} "
                            f"{entry['inside_local']} {entry['protocol'].lower()} {entry['inside_local_port']}")
            continue
        _require(entry, 'outside_global_port', what='masquerade static entry')
        cmd = (f"nat descriptor masquerade static {desc_id} {entry['entry_number']} "
               f"{entry['outside_global']}:{entry['outside_global_port']}="
               f"{entry['inside_local']}:{entry['inside_local_port']}")
        if entry.get('protocol'):
            cmd += f" {entry['protocol'].lower()}"
        commands.append(cmd)
    return commands


# --- Syslog ---

def build_syslog_host_command(host):
    """syslog host <address> [port]; the default port 514 is left out."""
    _require(host, 'address', what='syslog host')
    port = host.get('port') or 0
    if port > 0 and port != 514:
        return f"syslog host {host['address']} {port}"
    return f"syslog host {host['address']}"


def build_syslog_commands(config):
    commands = [build_syslog_host_command(h) for h in config.get('hosts', [])]
    if config.get('local_address'):
        commands.append(f"syslog local address {config['local_address']}")
    if config.get('facility'):
        commands.append(f"syslog facility {config['facility']}")
    for level in ('notice', 'info', 'debug'):
        commands.append(f"syslog {level} {_on_off(config.get(level, False))}")
    return commands


# --- System ---

def build_system_commands(config):
    commands = []
    if config.get('timezone'):
        commands.append(f"timezone {config['timezone']}")
    console = config.get('console') or {}
    if console.get('character'):
        commands.append(f"console character {console['character']}")
    if console.get('lines'):
        commands.append(f"console lines {console['lines']}")
    if console.get('prompt'):
        prompt = console['prompt']
        commands.append(f'console prompt "{prompt}"' if ' ' in prompt else f"console prompt {prompt}")
    for buf in config.get('packet_buffers', []):
        _require(buf, 'size', 'max_buffer', 'max_free', what='packet buffer')
        commands.append(f"system packet-buffer {buf['size']} max-buffer={buf['max_buffer']} max-free={buf['max_free']}")
    statistics = config.get('statistics')
    if statistics:
        commands.append(f"statistics traffic {_on_off(statistics.get('traffic'))}")
        commands.append(f"statistics nat {_on_off(statistics.get('nat'))}")
    return commands


# --- Tunnels ---

def _ike_commands(gateway_id, ike):
    commands = []
    if ike.get('local_address'):
        commands.append(f"  ipsec ike local address {gateway_id} {ike['local_address']}")
    if ike.get('remote_address'):
        commands.append(f"  ipsec ike remote address {gateway_id} {ike['remote_address']}")
    if ike.get('pre_shared_key'):
        commands.append(f"  ipsec ike pre-shared-key {gateway_id} text {ike['pre_shared_key']}")
    for field in ('encryption', 'hash', 'group'):
        if ike.get(field):
            commands.append(f"  ipsec ike {field} {gateway_id} {ike[field]}")
    keepalive = ike.get('keepalive')
    if keepalive:
        cmd = f"  ipsec ike keepalive use {gateway_id} on {keepalive['mode']} {keepalive['interval']}"
        if keepalive.get('retry'):
            cmd += f" {keepalive['retry']}"
        commands.append(cmd)
    return commands


def build_tunnel_commands(tunnel):
    """Statements for one tunnel, from ``tunnel select`` to ``tunnel enable``.

    IPsec tunnels other than the tunnel's own number are emitted as nested
    ``ipsec tunnel`` blocks carrying the SA policies and IKE settings.
    """
    _require(tunnel, 'id', what='tunnel')
    tunnel_id = tunnel['id']
    commands = [f"tunnel select {tunnel_id}"]
    if tunnel.get('description'):
        commands.append(f" description {tunnel['description']}")
    if tunnel.get('encapsulation') and tunnel['encapsulation'] != 'ipsec':
        commands.append(f" tunnel encapsulation {tunnel['encapsulation']}")
    if tunnel.get('endpoint_name'):
        cmd = f" tunnel endpoint name {tunnel['endpoint_name']}"
        if tunnel.get('endpoint_name_type'):
            cmd += f" {tunnel['endpoint_name_type']}"
        commands.append(cmd)
    elif tunnel.get('endpoint_remote'):
        local = f"{tunnel['endpoint_local']} " if tunnel.get('endpoint_local') else ''
        commands.append(f" tunnel endpoint address {local}{tunnel['endpoint_remote']}")

    ike_settings = tunnel.get('ike', {})
    emitted = set()
    for ipsec_id in tunnel.get('ipsec_tunnels', []):
        commands.append(f" ipsec tunnel {ipsec_id}")
        gateways = []
        for policy in tunnel.get('sa_policies', []):
            if policy['policy_id'] == ipsec_id:
                commands.append(f"  ipsec sa policy {policy['policy_id']} {policy['gateway_id']} "
                                f"{policy['protocol']} {' '.join(policy['algorithms'])}")
                gateways.append(policy['gateway_id'])
        # IKE gateways follow the policy that references them
        for gateway_id in gateways + [ipsec_id]:
            if gateway_id in ike_settings and gateway_id not in emitted:
                emitted.add(gateway_id)
                commands.extend(_ike_commands(gateway_id, ike_settings[gateway_id]))
    for gateway_id, ike in ike_settings.items():
        if gateway_id not in emitted:
            commands.extend(' ' + cmd.lstrip() for cmd in _ike_commands(gateway_id, ike))

    l2tp = tunnel.get('l2tp') or {}
    if l2tp.get('hostname'):
        commands.append(f" l2tp hostname {l2tp['hostname']}")
    for side in ('local', 'remote'):
        if l2tp.get(f"{side}_router_id"):
            commands.append(f" l2tp {side} router-id {l2tp[f'{side}_router_id']}")
    if l2tp.get('remote_end_id'):
        commands.append(f" l2tp remote end-id {l2tp['remote_end_id']}")
    if 'always_on' in l2tp:
        commands.append(f" l2tp always-on {_on_off(l2tp['always_on'])}")
    auth = l2tp.get('tunnel_auth')
    if auth:
        cmd = f" l2tp tunnel auth {_on_off(auth.get('enabled'))}"
        if auth.get('enabled') and auth.get('password'):
            cmd += f" {auth['password']}"
        commands.append(cmd)
    if l2tp.get('keepalive'):
        commands.append(f" l2tp keepalive use on {l2tp['keepalive']['interval']} {l2tp['keepalive']['retry']}")
    if 'syslog' in l2tp:
        commands.append(f" l2tp syslog {_on_off(l2tp['syslog'])}")

    for direction in ('in', 'out'):
        filters = tunnel.get(f"secure_filter_{direction}") or []
        if filters:
            commands.append(f" ip tunnel secure filter {direction} {' '.join(str(f) for f in filters)}")
    if tunnel.get('tcp_mss_limit'):
        commands.append(f" ip tunnel tcp mss limit {tunnel['tcp_mss_limit']}")
    if tunnel.get('enabled'):
        commands.append(f" tunnel enable {tunnel_id}")
    return commands


# --- PP peers ---

def build_pp_commands(peer):
    """Statements for one pp peer, from ``pp select`` to ``pp enable``."""
    if not peer.get('name') and not peer.get('id'):
        raise ValueError("pp peer needs an 'id' or a 'name'")
    ref = peer.get('name') or peer['id']
    commands = [f"pp select {ref}"]
    if peer.get('description'):
        commands.append(f" description pp {peer['description']}")
    if peer.get('pppoe_use'):
        commands.append(f" pppoe use {peer['pppoe_use']}")
    if peer.get('bind'):
        commands.append(f" pp bind {peer['bind']}")
    if peer.get('always_on') is not None:
        commands.append(f" pp always-on {_on_off(peer['always_on'])}")
    for kind in ('request', 'accept'):
        if peer.get(f"auth_{kind}"):
            commands.append(f" pp auth {kind} {peer[f'auth_{kind}']}")
    myname = peer.get('auth_myname')
    if myname:
        commands.append(f" pp auth myname {myname['username']} {myname['password']}")
    for user in peer.get('auth_users', []):
        commands.append(f" pp auth username {user['username']} {user['password']}")
    if peer.get('ip_address'):
        commands.append(f" ip pp address {peer['ip_address']}")
    if peer.get('mtu'):
        commands.append(f" ip pp mtu {peer['mtu']}")
    if peer.get('nat_descriptor'):
        commands.append(f" ip pp nat descriptor {peer['nat_descriptor']}")
    if peer.get('remote_address_pool'):
        commands.append(f" ip pp remote address pool {peer['remote_address_pool']}")
    if peer.get('enabled'):
        commands.append(f" pp enable {ref}")
    return commands


# --- Interfaces ---

def _numbers(values):
    return ' '.join(str(v) for v in values)


def build_interface_commands(iface):
    """Global statements configuring one interface (``ip lan1 ...``)."""
    _require(iface, 'name', what='interface')
    name = iface['name']
    commands = []
    if iface.get('description'):
        commands.append(f'description {name} "{iface["description"]}"')
    if iface.get('dhcp'):
        commands.append(f"ip {name} address dhcp")
    elif iface.get('address'):
        commands.append(f"ip {name} address {iface['address']}")
    if iface.get('secure_filter_in'):
        commands.append(f"ip {name} secure filter in {_numbers(iface['secure_filter_in'])}")
    if iface.get('secure_filter_out') or iface.get('dynamic_filter_out'):
        cmd = f"ip {name} secure filter out {_numbers(iface.get('secure_filter_out') or [])}".rstrip()
        if iface.get('dynamic_filter_out'):
            cmd += f" dynamic {_numbers(iface['dynamic_filter_out'])}"
        commands.append(cmd)
    for direction in ('in', 'out'):
        filters = iface.get(f"ethernet_filter_{direction}") or []
        if filters:
            commands.append(f"ethernet {name} filter {direction} {_numbers(filters)}")
    if iface.get('nat_descriptor'):
        commands.append(f"ip {name} nat descriptor {iface['nat_descriptor']}")
    if iface.get('proxyarp') is not None:
        commands.append(f"ip {name} proxyarp {_on_off(iface['proxyarp'])}")
    if iface.get('mtu'):
        commands.append(f"ip {name} mtu {iface['mtu']}")
    return commands


# --- IP filters ---

def build_ip_filter_command(ip_filter):
    """ip filter <n> <action> <src> <dst> <proto> [<src port>] [<dst port>] [established]

    A destination port without a source port gets ``*`` in the source slot.
    """
    _require(ip_filter, 'number', 'action', 'source_address', 'dest_address', 'protocol', what='ip filter')
    parts = ['ip filter', str(ip_filter['number']), ip_filter['action'], ip_filter['source_address'],
             ip_filter['dest_address'], ip_filter['protocol']]
    if ip_filter.get('source_port'):
        parts.append(ip_filter['source_port'])
    elif ip_filter.get('dest_port'):
        parts.append('*')
    if ip_filter.get('dest_port'):
        parts.append(ip_filter['dest_port'])
    if ip_filter.get('established') and ip_filter['protocol'].lower() == 'tcp':
        parts.append('established')
    return ' '.join(parts)


def build_delete_ip_filter_command(number):
    return f"no ip filter {number}"


# --- DHCP scopes ---

def format_lease_time(seconds):
    """43200 -> '12:00'."""
    minutes = seconds // 60
    return f"{minutes // 60}:{minutes % 60:02d}"


def build_dhcp_scope_command(scope):
    """dhcp scope <id> START-END/PREFIX [gateway ip] [dns ip ...] [domain d] [expire h:mm] [maxexpire h:mm]"""
    _require(scope, 'scope_id', 'range_start', 'range_end', what='dhcp scope')
    if not scope.get('prefix'):
        raise ValueError("dhcp scope is missing required field 'prefix'")
    cmd = f"dhcp scope {scope['scope_id']} {scope['range_start']}-{scope['range_end']}/{scope['prefix']}"
    if scope.get('gateway'):
        cmd += f" gateway {scope['gateway']}"
    if scope.get('dns_servers'):
        cmd += f" dns {' '.join(scope['dns_servers'])}"
    if scope.get('domain_name'):
        cmd += f" domain {scope['domain_name']}"
    if scope.get('lease'):
        cmd += f" expire {format_lease_time(scope['lease'])}"
    if scope.get('max_lease'):
        cmd += f" maxexpire {format_lease_time(scope['max_lease'])}"
    return cmd


def build_delete_dhcp_scope_command(scope_id):
    return f"no dhcp scope {scope_id}"


# --- Administration ---

def build_user_command(user):
    _require(user, 'username', 'password', what='login user')
    if user.get('encrypted'):
        return f"login user {user['username']} encrypted {user['password']}"
    return f"login user {user['username']} {user['password']}"


def build_user_attribute_command(username, attrs):
    """user attribute <name> key=value ...; None when no attribute is set."""
    parts = []
    if attrs.get('administrator') is not None:
        parts.append(f"administrator={_on_off(attrs['administrator'])}")
    if attrs.get('connection'):
        parts.append(f"connection={','.join(attrs['connection'])}")
    if attrs.get('gui_pages'):
        parts.append(f"gui-page={','.join(attrs['gui_pages'])}")
    if attrs.get('login_timer') is not None:
        parts.append(f"login-timer={attrs['login_timer']}")
    if not parts:
        return None
    return f"user attribute {username} {' '.join(parts)}"


def build_admin_commands(config):
    """Passwords, login users and user attributes of a decoded admin record."""
    commands = []
    if config.get('login_password'):
        commands.append(f"login password {config['login_password']}")
    if config.get('admin_password'):
        commands.append(f"administrator password {config['admin_password']}")
    for user in config.get('users', []):
        if user.get('password'):
            commands.append(build_user_command(user))
        attribute_cmd = build_user_attribute_command(user['username'], user.get('attributes') or {})
        if attribute_cmd:
            commands.append(attribute_cmd)
    return commands
