#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Generates context diagrams of a classified RTX configuration using Graphviz.
"""

import sys

from graphviz import CalledProcessError, Digraph, ExecutableNotFound

from config_model import ContextKind
from extractors import nested_ipsec_contexts


class ContextDiagramGenerator:
    """Draws the router, its tunnel/pp contexts and what routes through them."""

    CLUSTER_STYLE = {
        'style': 'rounded,dashed',
        'color': '#9e9e9e',
        'fontname': 'Helvetica Bold',
        'fontsize': '11',
    }
    NODE_STYLES = {
        ContextKind.GLOBAL: {'shape': 'box3d', 'style': 'filled', 'fillcolor': '#90caf9', 'color': '#1565c0'},
        ContextKind.TUNNEL: {'shape': 'box', 'style': 'rounded,filled', 'fillcolor': '#c8e6c9', 'color': '#2e7d32'},
        ContextKind.IPSEC_TUNNEL: {'shape': 'box', 'style': 'rounded,filled', 'fillcolor': '#fff9c4', 'color': '#f9a825'},
        ContextKind.PEER: {'shape': 'box', 'style': 'rounded,filled', 'fillcolor': '#ffe0b2', 'color': '#ef6c00'},
    }
    ROUTE_STYLE = {'shape': 'note', 'style': 'filled', 'fillcolor': '#eceff1', 'color': '#607d8b'}
    NAT_STYLE = {'shape': 'hexagon', 'style': 'filled', 'fillcolor': '#f8bbd0', 'color': '#ad1457'}

    ROUTER_NODE = 'router'

    def __init__(self, parsed, model=None):
        self.parsed = parsed
        self.model = model
        self.graph = Digraph(comment='RTX Configuration Contexts')
        self.graph.attr(rankdir='LR', fontname='Helvetica', bgcolor='white', nodesep='0.4', ranksep='0.8')
        self.processed_nodes = set()
        self._built = False

    @staticmethod
    def node_id(context):
        """Graphviz-safe node id for a context."""
        return f"{context.kind.name.lower()}_{context.name or context.id}"

    def _add_node(self, name, **attrs):
        """Add a node idempotently with default styling."""
        if name not in self.processed_nodes:
            default_attrs = {
                'fontname': 'Helvetica',
                'fontsize': '9',
                'margin': '0.15',
            }
            self.graph.node(name, **{**default_attrs, **attrs})
            self.processed_nodes.add(name)

    def _add_edge(self, src, dst, **attrs):
        default_attrs = {
            'fontname': 'Helvetica',
            'fontsize': '7',
            'arrowsize': '0.7',
            'penwidth': '0.8',
            'color': '#555555',
        }
        self.graph.edge(src, dst, **{**default_attrs, **attrs})

    def _context_label(self, context):
        count = len(self.parsed.statements_in(context))
        lines = [context.selector_line, f"{count} statements"]
        if self.model is not None:
            if context.kind is ContextKind.TUNNEL:
                tunnel = self.model.tunnels.get(context.id, {})
                if tunnel.get('description'):
                    lines.insert(1, tunnel['description'])
                endpoint = tunnel.get('endpoint_name') or tunnel.get('endpoint_remote')
                if endpoint:
                    lines.insert(-1, f"-> {endpoint}")
            elif context.kind is ContextKind.PEER:
                peer = self.model.peers.get(context.name or str(context.id), {})
                if peer.get('description'):
                    lines.insert(1, peer['description'])
        return '\n'.join(lines)

    def generate_contexts(self):
        """Router node plus one node per context, IPsec tunnels hanging off their tunnel."""
        global_count = len(self.parsed.global_statements())
        self._add_node(self.ROUTER_NODE, label=f"Router\n{global_count} global statements",
                       **self.NODE_STYLES[ContextKind.GLOBAL])

        nesting = nested_ipsec_contexts(self.parsed)
        if nesting:
            with self.graph.subgraph(name='cluster_tunnels') as cluster:
                cluster.attr(label='Tunnels', **self.CLUSTER_STYLE)
                for tunnel_ctx, ipsec_contexts in nesting.items():
                    tunnel_node = self.node_id(tunnel_ctx)
                    cluster.node(tunnel_node, label=self._context_label(tunnel_ctx),
                                 fontname='Helvetica', fontsize='9', **self.NODE_STYLES[ContextKind.TUNNEL])
                    self.processed_nodes.add(tunnel_node)
                    for ipsec_ctx in ipsec_contexts:
                        ipsec_node = self.node_id(ipsec_ctx)
                        if ipsec_node in self.processed_nodes:
                            continue
                        cluster.node(ipsec_node, label=self._context_label(ipsec_ctx),
                                     fontname='Helvetica', fontsize='9', **self.NODE_STYLES[ContextKind.IPSEC_TUNNEL])
                        self.processed_nodes.add(ipsec_node)
            for tunnel_ctx, ipsec_contexts in nesting.items():
                self._add_edge(self.ROUTER_NODE, self.node_id(tunnel_ctx))
                for ipsec_ctx in ipsec_contexts:
                    self._add_edge(self.node_id(tunnel_ctx), self.node_id(ipsec_ctx), style='dashed', label='ipsec')

        peers = self.parsed.contexts_of_kind(ContextKind.PEER)
        if peers:
            with self.graph.subgraph(name='cluster_peers') as cluster:
                cluster.attr(label='PP Peers', **self.CLUSTER_STYLE)
                for ctx in peers:
                    node = self.node_id(ctx)
                    cluster.node(node, label=self._context_label(ctx),
                                 fontname='Helvetica', fontsize='9', **self.NODE_STYLES[ContextKind.PEER])
                    self.processed_nodes.add(node)
            for ctx in peers:
                self._add_edge(self.ROUTER_NODE, self.node_id(ctx))

    def generate_bindings(self):
        """pp bind tunnelN edges and pp -> nat descriptor edges."""
        if self.model is None:
            return
        for key, peer in self.model.peers.items():
            pp_node = f"peer_{key}"
            bind = peer.get('bind') or ''
            if bind.startswith('tunnel') and bind[len('tunnel'):].isdigit():
                tunnel_node = f"tunnel_{bind[len('tunnel'):]}"
                if tunnel_node in self.processed_nodes:
                    self._add_edge(pp_node, tunnel_node, style='dotted', label='bind')
            if peer.get('nat_descriptor'):
                nat_node = f"nat_{peer['nat_descriptor']}"
                self._add_node(nat_node, label=f"NAT {peer['nat_descriptor']}", **self.NAT_STYLE)
                self._add_edge(pp_node, nat_node, label='nat')

    def generate_routes(self):
        """One node per static route, linked to the context or gateway it uses."""
        if self.model is None:
            return
        for idx, route in enumerate(self.model.static_routes):
            route_node = f"route_{idx}"
            network = 'default' if route['prefix'] == '0.0.0.0' and route['mask'] == '0.0.0.0' \
                else f"{route['prefix']}/{route['mask']}"
            self._add_node(route_node, label=f"ip route\n{network}", **self.ROUTE_STYLE)
            for hop in route['next_hops']:
                target = self._hop_node(hop)
                self._add_edge(route_node, target, label=f"w{hop.get('distance', 1)}")

    def _hop_node(self, hop):
        interface = hop.get('interface') or ''
        kind, _, ref = interface.partition(' ')
        if kind == 'pp' and f"peer_{ref}" in self.processed_nodes:
            return f"peer_{ref}"
        if kind == 'tunnel' and f"tunnel_{ref}" in self.processed_nodes:
            return f"tunnel_{ref}"
        label = hop.get('next_hop') or interface or '?'
        node = f"gw_{label.replace(' ', '_').replace('.', '_').replace(':', '_')}"
        self._add_node(node, label=label, shape='ellipse')
        return node

    def build(self):
        """Populates the graph once; safe to call repeatedly."""
        if not self._built:
            self.generate_contexts()
            self.generate_bindings()
            self.generate_routes()
            self._built = True
        return self.graph

    @property
    def source(self):
        """DOT source of the diagram. Needs no Graphviz binaries."""
        return self.build().source

    def generate_diagram(self, output_file='rtx_contexts'):
        """Renders the diagram to PNG and SVG, saving the DOT source if rendering fails."""
        print("Generating context diagram...")
        self.build()
        print(f"Attempting to render diagram to {output_file}.[png|svg]...")
        try:
            png_filename = self.graph.render(output_file, format='png', view=False, cleanup=True)
            print(f"Successfully generated PNG diagram: {png_filename}")
            svg_filename = self.graph.render(output_file, format='svg', view=False, cleanup=True)
            print(f"Successfully generated SVG diagram: {svg_filename}")
        except (ExecutableNotFound, CalledProcessError, OSError) as e:
            print(f"\nError rendering graph with Graphviz: {e}", file=sys.stderr)
            print("Ensure Graphviz executables (dot) are installed and in your system's PATH.", file=sys.stderr)
            dot_filename = f"{output_file}.gv"
            try:
                self.graph.save(filename=dot_filename)
                print(f"Saved DOT source file for manual inspection/rendering: {dot_filename}")
            except OSError as dot_e:
                print(f"Error saving DOT source file: {dot_e}", file=sys.stderr)
            return None
        return png_filename
