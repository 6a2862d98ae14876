#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utilities for comparing two classified RTX configurations: statement by
statement within each context, and section by section on the decoded model.
"""
import html
import pprint
from collections import Counter

from config_model import RouterModel
from extractors import build_model


def compare_objects(obj1, obj2, ignore_keys=None):
    """Compares two dict records field by field.

    Returns:
        {'field': {'old': value1, 'new': value2}, ...}, or None if the
        records are identical (ignoring ``ignore_keys``).
    """
    ignore_keys = ignore_keys or set()
    diff = {}
    for key in set(obj1) | set(obj2):
        if key in ignore_keys:
            continue
        val1, val2 = obj1.get(key), obj2.get(key)
        if val1 != val2:
            diff[key] = {'old': val1, 'new': val2}
    return diff or None


def compare_config_section(section1, section2, section_name, id_key='name'):
    """Compares one decoded section of two models.

    Dict sections are matched by key, list sections by ``id_key``.

    Returns:
        {'added': [...], 'deleted': [...], 'modified': {id: changes}}, or
        None when nothing changed.
    """
    results = {'added': [], 'deleted': [], 'modified': {}}

    if isinstance(section1, list) and isinstance(section2, list):
        section1 = {item.get(id_key): item for item in section1 if item.get(id_key) is not None}
        section2 = {item.get(id_key): item for item in section2 if item.get(id_key) is not None}
    if not (isinstance(section1, dict) and isinstance(section2, dict)):
        raise TypeError(f"Cannot compare section '{section_name}': "
                        f"{type(section1).__name__} vs {type(section2).__name__}")

    for key in section2.keys() - section1.keys():
        results['added'].append({id_key: key, 'value': section2[key]})
    for key in section1.keys() - section2.keys():
        results['deleted'].append({id_key: key, 'value': section1[key]})
    for key in section1.keys() & section2.keys():
        val1, val2 = section1[key], section2[key]
        if isinstance(val1, dict) and isinstance(val2, dict):
            diff = compare_objects(val1, val2)
            if diff:
                results['modified'][key] = diff
        elif val1 != val2:
            results['modified'][key] = {'value': {'old': val1, 'new': val2}}

    if results['added'] or results['deleted'] or results['modified']:
        return results
    return None


def _routes_by_network(routes):
    return {f"{r['prefix']}/{r['mask']}": r for r in routes}


def _users_without_secrets(admin):
    """Login users keyed by name, with passwords left out."""
    return {u['username']: {k: v for k, v in u.items() if k != 'password'} for u in (admin or {}).get('users', [])}


def compare_models(model1: RouterModel, model2: RouterModel):
    """Compares the decoded sections of two RouterModels.

    Credentials and login passwords are left out so secrets never end up in a report.
    """
    diff_results = {}

    # attribute -> (display name, id key); id key None means a single settings block
    sections_to_compare = {
        'static_routes':  ('Static Routes', 'network'),
        'dns':            ('DNS', None),
        'nat_masquerade': ('NAT Masquerade', 'descriptor_id'),
        'syslog':         ('Syslog', None),
        'system':         ('System', None),
        'tunnels':        ('Tunnels', 'id'),
        'peers':          ('PP Peers', 'pp'),
        'interfaces':     ('Interfaces', 'name'),
        'ip_filters':     ('IP Filters', 'number'),
        'dhcp_scopes':    ('DHCP Scopes', 'scope_id'),
        'admin':          ('Login Users', 'username'),
    }

    for attr_name, (display_name, id_key) in sections_to_compare.items():
        section1 = getattr(model1, attr_name)
        section2 = getattr(model2, attr_name)
        if attr_name == 'static_routes':
            section1, section2 = _routes_by_network(section1), _routes_by_network(section2)
        elif attr_name == 'admin':
            section1, section2 = _users_without_secrets(section1), _users_without_secrets(section2)

        if id_key is None:
            diff = compare_objects(section1 or {}, section2 or {})
            if diff:
                diff_results[display_name] = {'added': [], 'deleted': [], 'modified': {'Settings': diff}}
        else:
            section_diff = compare_config_section(section1, section2, display_name, id_key)
            if section_diff:
                diff_results[display_name] = section_diff

    return diff_results


def _context_label(context):
    return 'global' if context is None else str(context)


def compare_statements(parsed1, parsed2):
    """Compares the statement texts of each context, ignoring line positions.

    A statement repeated in one dump is matched that many times in the other.
    """
    diff_results = {}
    contexts = [None] + list(parsed1.contexts) + [c for c in parsed2.contexts if c not in parsed1.contexts]

    for ctx in contexts:
        stmts1 = parsed1.global_statements() if ctx is None else parsed1.statements_in(ctx)
        stmts2 = parsed2.global_statements() if ctx is None else parsed2.statements_in(ctx)
        added = Counter(s.text for s in stmts2) - Counter(s.text for s in stmts1)
        deleted = Counter(s.text for s in stmts1) - Counter(s.text for s in stmts2)
        if not added and not deleted:
            continue

        result = {'added': [], 'deleted': [], 'modified': {}}
        for s in stmts2:
            if added[s.text] > 0:
                added[s.text] -= 1
                result['added'].append({'line': s.line_number, 'statement': s.text})
        for s in stmts1:
            if deleted[s.text] > 0:
                deleted[s.text] -= 1
                result['deleted'].append({'line': s.line_number, 'statement': s.text})
        diff_results[f"Context: {_context_label(ctx)}"] = result

    return diff_results


def compare_parsed(parsed1, parsed2, model1=None, model2=None):
    """Statement diff per context followed by the decoded-section diff."""
    diff_results = compare_statements(parsed1, parsed2)
    diff_results.update(compare_models(model1 or build_model(parsed1), model2 or build_model(parsed2)))
    return diff_results


def format_value(value):
    """Formats a value for display in the diff output."""
    if isinstance(value, list):
        if value and all(isinstance(item, dict) for item in value):
            return '\n' + pprint.pformat(value, indent=2, width=60)
        return ', '.join(map(str, value))
    if isinstance(value, dict):
        return '\n' + pprint.pformat(value, indent=2, width=60)
    if value is None:
        return '_(Not Set)_'
    return str(value)


def _item_id(item):
    id_keys = ('line', 'network', 'descriptor_id', 'id', 'pp', 'name', 'number', 'scope_id', 'username')
    key = next((k for k in id_keys if k in item), None)
    return item.get(key, 'Unknown Item')


def _item_details(item):
    if 'statement' in item:
        return item['statement']
    return format_value(item.get('value', item))


def format_diff_results(diff_data: dict):
    """Formats the structured diff data into HTML for Streamlit and the PDF report."""
    html_output = ["""
    <style>
        .diff-table { width: 100%; border-collapse: collapse; margin-bottom: 20px; }
        .diff-table th, .diff-table td {
            border: 1px solid #cccccc; padding: 6px; text-align: left;
            vertical-align: top; color: #333333;
        }
        .diff-table th { background-color: #e0e0e0; }
        .diff-table tr.added td { background-color: #e6ffed; color: #222222; }
        .diff-table tr.deleted td { background-color: #ffebee; color: #222222; }
        .diff-table tr.modified td:first-child { font-weight: bold; }
        .diff-table pre, .diff-table code {
            background-color: #f8f8f8; padding: 4px; border: 1px solid #ddd;
            white-space: pre-wrap; word-wrap: break-word; color: #333333;
        }
        .field-name { font-weight: bold; }
    </style>
    """]

    has_changes = False
    for section_name, changes in diff_data.items():
        if not (changes.get('added') or changes.get('deleted') or changes.get('modified')):
            continue
        has_changes = True
        section_html = [f"<h3>{html.escape(section_name)}</h3>",
                        "<table class='diff-table'>",
                        "<thead><tr><th>Item</th><th>Change Type</th><th>Details</th></tr></thead>",
                        "<tbody>"]

        for item_id, modifications in sorted(changes.get('modified', {}).items(), key=lambda kv: str(kv[0])):
            details_html = ["<ul>"]
            for field, change in sorted(modifications.items()):
                old_val_str = html.escape(format_value(change.get('old')))
                new_val_str = html.escape(format_value(change.get('new')))
                old_formatted = f"<pre>{old_val_str}</pre>" if '\n' in old_val_str else f"<code>{old_val_str}</code>"
                new_formatted = f"<pre>{new_val_str}</pre>" if '\n' in new_val_str else f"<code>{new_val_str}</code>"
                details_html.append(f"<li><span class='field-name'>{html.escape(str(field))}:</span> "
                                    f"{old_formatted} &rarr; {new_formatted}</li>")
            details_html.append("</ul>")
            section_html.append(f"<tr class='modified'><td>{html.escape(str(item_id))}</td><td>Modified</td>"
                                f"<td>{''.join(details_html)}</td></tr>")

        for change_type in ('added', 'deleted'):
            for item in changes.get(change_type, []):
                section_html.append(f"<tr class='{change_type}'><td>{html.escape(str(_item_id(item)))}</td>"
                                    f"<td>{change_type.capitalize()}</td>"
                                    f"<td><pre>{html.escape(_item_details(item))}</pre></td></tr>")

        section_html.append("</tbody></table>")
        html_output.extend(section_html)

    if not has_changes:
        return "<p><strong>No differences found between the configurations.</strong></p>"
    return '\n'.join(html_output)


def format_diff_text(diff_data: dict):
    """Plain-text rendering of the diff for the console, one change per line."""
    lines = []
    for section_name, changes in diff_data.items():
        if not (changes.get('added') or changes.get('deleted') or changes.get('modified')):
            continue
        lines.append(f"[{section_name}]")
        for item in changes.get('deleted', []):
            lines.append(f"  - {_item_id(item)}: {_item_details(item).strip()}")
        for item in changes.get('added', []):
            lines.append(f"  + {_item_id(item)}: {_item_details(item).strip()}")
        for item_id, modifications in changes.get('modified', {}).items():
            for field, change in sorted(modifications.items()):
                lines.append(f"  ~ {item_id}.{field}: {change.get('old')!r} -> {change.get('new')!r}")
    if not lines:
        return "No differences found between the configurations."
    return '\n'.join(lines)
