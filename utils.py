#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Table helpers for RTXParser: ASCII tables for the console, DataFrames for
Streamlit and the HTML report shared by the web UI and its PDF export.
"""
import html

import pandas as pd

def print_table(title, headers, rows):
    """Print an ASCII table given headers and rows of data."""
    widths = [len(h) for h in headers]
    for r in rows:
        for i, cell in enumerate(r[:len(headers)]):
            widths[i] = max(widths[i], len(str(cell)))

    sep = '+' + '+'.join('-' * (w + 2) for w in widths) + '+'
    print(f"\n{title}")
    print(sep)
    print('|' + '|'.join(f' {h.ljust(widths[i])} ' for i, h in enumerate(headers)) + '|')
    print(sep)
    if not rows:
        print('| ' + '(none)'.ljust(len(sep) - 4) + ' |')
    for r in rows:
        cells = [str(r[i]) if i < len(r) else '' for i in range(len(headers))]
        print('|' + '|'.join(f' {c.ljust(widths[i])} ' for i, c in enumerate(cells)) + '|')
    print(sep)

def get_table_dataframe(data: list, columns: list, display_columns: dict = None) -> pd.DataFrame:
    """Converts a list of record dicts into a DataFrame for display.

    Args:
        data: Records, one dict per row.
        columns: Keys to keep, in display order.
        display_columns: Optional mapping of key -> column title.

    Returns:
        A DataFrame with missing values shown as '-'.
    """
    if not data:
        return pd.DataFrame(columns=[display_columns.get(c, c) for c in columns] if display_columns else columns)

    df = pd.DataFrame(data)
    existing_columns = [col for col in columns if col in df.columns]
    df_selected = df[existing_columns]
    if display_columns:
        rename_map = {orig: disp for orig, disp in display_columns.items() if orig in existing_columns}
        df_selected = df_selected.rename(columns=rename_map)
    return df_selected.fillna('-')

def statements_dataframe(statements) -> pd.DataFrame:
    """One row per classified statement: line, context, indent, text."""
    rows = [{
        'line_number': s.line_number,
        'context': str(s.context) if s.context is not None else 'global',
        'indent_level': s.indent_level,
        'text': s.text,
    } for s in statements]
    return get_table_dataframe(
        rows,
        ['line_number', 'context', 'indent_level', 'text'],
        {'line_number': 'Line', 'context': 'Context', 'indent_level': 'Indent', 'text': 'Statement'},
    )

def section_frames(model):
    """(title, DataFrame) pairs for every decoded section of a RouterModel."""
    route_rows = []
    for route in model.static_routes:
        for hop in route['next_hops']:
            route_rows.append({**hop, 'prefix': route['prefix'], 'mask': route['mask'],
                               'gateway': hop['interface'] or hop['next_hop']})
    frames = [("Static Routes", get_table_dataframe(
        route_rows,
        ['prefix', 'mask', 'gateway', 'distance', 'filter', 'permanent', 'name'],
        {'prefix': 'Prefix', 'mask': 'Mask', 'gateway': 'Gateway', 'distance': 'Weight',
         'filter': 'Filter', 'permanent': 'Keepalive', 'name': 'Name'}))]

    iface_rows = [{**i, 'address': 'dhcp' if i['dhcp'] else i['address'],
                   'secure_filter_in': ' '.join(map(str, i['secure_filter_in'])),
                   'secure_filter_out': ' '.join(map(str, i['secure_filter_out'])),
                   'dynamic_filter_out': ' '.join(map(str, i['dynamic_filter_out']))}
                  for i in model.interfaces.values()]
    frames.append(("Interfaces", get_table_dataframe(
        iface_rows, ['name', 'description', 'address', 'secure_filter_in', 'secure_filter_out',
                     'dynamic_filter_out', 'nat_descriptor', 'mtu'],
        {'name': 'Interface', 'description': 'Description', 'address': 'Address',
         'secure_filter_in': 'Filter In', 'secure_filter_out': 'Filter Out',
         'dynamic_filter_out': 'Dynamic Out', 'nat_descriptor': 'NAT', 'mtu': 'MTU'})))

    frames.append(("IP Filters", get_table_dataframe(
        model.ip_filters,
        ['number', 'action', 'source_address', 'dest_address', 'protocol', 'source_port', 'dest_port', 'established'],
        {'number': 'Number', 'action': 'Action', 'source_address': 'Source', 'dest_address': 'Destination',
         'protocol': 'Protocol', 'source_port': 'Src Port', 'dest_port': 'Dst Port',
         'established': 'Established'})))

    scope_rows = [{**s, 'range': f"{s['range_start']}-{s['range_end']}/{s['prefix']}",
                   'dns_servers': ', '.join(s['dns_servers'])} for s in model.dhcp_scopes]
    frames.append(("DHCP Scopes", get_table_dataframe(
        scope_rows, ['scope_id', 'range', 'gateway', 'dns_servers', 'lease'],
        {'scope_id': 'Scope', 'range': 'Range', 'gateway': 'Gateway', 'dns_servers': 'DNS',
         'lease': 'Lease (s)'})))

    dns = model.dns
    dns_rows = [{'name_servers': ', '.join(dns.get('name_servers', [])), 'domain_name': dns.get('domain_name'),
                 'domain_lookup': dns.get('domain_lookup'), 'service_on': dns.get('service_on'),
                 'private_spoof': dns.get('private_spoof')}] if dns else []
    frames.append(("DNS", get_table_dataframe(
        dns_rows, ['name_servers', 'domain_name', 'domain_lookup', 'service_on', 'private_spoof'],
        {'name_servers': 'Servers', 'domain_name': 'Domain', 'domain_lookup': 'Lookup',
         'service_on': 'Service', 'private_spoof': 'Private Spoof'})))
    frames.append(("DNS Static Hosts", get_table_dataframe(
        dns.get('hosts', []), ['name', 'address'], {'name': 'Host', 'address': 'Address'})))

    frames.append(("NAT Masquerade", get_table_dataframe(
        [{**n, 'static_entries': len(n['static_entries'])} for n in model.nat_masquerade],
        ['descriptor_id', 'outer_address', 'inner_network', 'static_entries'],
        {'descriptor_id': 'Descriptor', 'outer_address': 'Outer', 'inner_network': 'Inner',
         'static_entries': 'Static Entries'})))

    frames.append(("Syslog Hosts", get_table_dataframe(
        model.syslog.get('hosts', []), ['address', 'port'], {'address': 'Address', 'port': 'Port'})))

    tunnel_rows = [{**t, 'ipsec_tunnels': ', '.join(map(str, t['ipsec_tunnels'])),
                    'endpoint': t['endpoint_name'] or t['endpoint_remote']}
                   for t in model.tunnels.values()]
    frames.append(("Tunnels", get_table_dataframe(
        tunnel_rows, ['id', 'description', 'encapsulation', 'endpoint', 'ipsec_tunnels', 'enabled'],
        {'id': 'ID', 'description': 'Description', 'encapsulation': 'Encapsulation',
         'endpoint': 'Endpoint', 'ipsec_tunnels': 'IPsec Tunnels', 'enabled': 'Enabled'})))

    peer_rows = [{**p, 'pp': key} for key, p in model.peers.items()]
    frames.append(("PP Peers", get_table_dataframe(
        peer_rows, ['pp', 'description', 'bind', 'pppoe_use', 'auth_accept', 'remote_address_pool', 'enabled'],
        {'pp': 'PP', 'description': 'Description', 'bind': 'Bind', 'pppoe_use': 'PPPoE',
         'auth_accept': 'Auth Accept', 'remote_address_pool': 'Remote Pool', 'enabled': 'Enabled'})))

    # passwords stay out of the tables
    user_rows = [{'username': u['username'], 'encrypted': u['encrypted'],
                  'administrator': u['attributes']['administrator'],
                  'connection': ','.join(u['attributes']['connection'])}
                 for u in model.admin.get('users', [])]
    frames.append(("Login Users", get_table_dataframe(
        user_rows, ['username', 'encrypted', 'administrator', 'connection'],
        {'username': 'User', 'encrypted': 'Encrypted', 'administrator': 'Administrator',
         'connection': 'Connection'})))
    return frames

def build_report_html(file_name, parsed, model, diff_html=None):
    """HTML report of the classification and decoded sections, also used for the PDF export."""
    report_html = ["<html><head><meta charset='utf-8'><title>RTX Configuration Report</title>",
                   "<style>body { font-family: Helvetica, sans-serif; font-size: 10px; }"
                   " table { border-collapse: collapse; width: 100%; }"
                   " th, td { border: 1px solid #cccccc; padding: 4px; text-align: left; }"
                   " th { background-color: #e0e0e0; }</style></head><body>"]
    report_html.append(f"<h1>RTX Configuration Report: {html.escape(file_name)}</h1>")
    report_html.append(f"<p>Lines: {parsed.line_count} &middot; Statements: {parsed.statement_count} &middot; "
                       f"Comments: {parsed.comment_count} &middot; Contexts: {len(parsed.contexts)}</p>")

    report_html.append("<h2>Contexts</h2>")
    df_ctx = get_table_dataframe(
        parsed.context_summary(), ['context', 'kind', 'statements', 'first_line', 'last_line'],
        {'context': 'Context', 'kind': 'Kind', 'statements': 'Statements',
         'first_line': 'First Line', 'last_line': 'Last Line'})
    report_html.append(df_ctx.to_html(escape=True, index=False, border=0))

    for title, df in section_frames(model):
        report_html.append(f"<h2>{title}</h2>")
        report_html.append(df.to_html(escape=True, index=False, border=0))

    if diff_html:
        report_html.append("<h2>Configuration Differences</h2>")
        report_html.append(diff_html)

    report_html.append("</body></html>")
    return "\n".join(report_html)
