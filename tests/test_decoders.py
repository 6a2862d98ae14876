import io
import unittest
from contextlib import redirect_stderr

from decoders import (
    cidr_to_mask, mask_to_cidr, parse_admin_config, parse_dhcp_scopes, parse_dns_config, parse_dns_server_select,
    parse_interface_config, parse_ip_filters, parse_lease_time, parse_nat_masquerade, parse_network,
    parse_pp_config, parse_static_routes, parse_syslog_config, parse_system_config, parse_tunnel_config,
    parse_user_attributes,
)


class TestNetworkNotation(unittest.TestCase):
    def test_parse_network(self):
        self.assertEqual(parse_network('default'), ('0.0.0.0', '0.0.0.0'))
        self.assertEqual(parse_network('10.0.0.0/8'), ('10.0.0.0', '255.0.0.0'))
        self.assertEqual(parse_network('192.168.1.0/255.255.255.0'), ('192.168.1.0', '255.255.255.0'))

    def test_parse_network_invalid(self):
        for network in ('10.0.0.0', 'bogus/24', '10.0.0.0/33', '10.0.0.0/255.255.0.x'):
            with self.subTest(network=network):
                self.assertIsNone(parse_network(network))

    def test_mask_conversion(self):
        self.assertEqual(cidr_to_mask(24), '255.255.255.0')
        self.assertEqual(cidr_to_mask(0), '0.0.0.0')
        self.assertEqual(mask_to_cidr('255.255.255.252'), 30)
        self.assertIsNone(mask_to_cidr('255.0.255.0'))


class TestStaticRoutes(unittest.TestCase):
    def test_default_and_prefix_routes(self):
        routes = parse_static_routes("ip route default gateway 198.51.100.254\n"
                                     "ip route 10.0.0.0/8 gateway 192.0.2.1")
        self.assertEqual(len(routes), 2)
        self.assertEqual(routes[0]['prefix'], '0.0.0.0')
        self.assertEqual(routes[0]['mask'], '0.0.0.0')
        self.assertEqual(routes[0]['next_hops'][0]['next_hop'], '198.51.100.254')
        self.assertEqual(routes[1]['mask'], '255.0.0.0')

    def test_hop_options(self):
        routes = parse_static_routes(
            "ip route 172.16.0.0/16 gateway 192.168.1.1 weight 10 filter 100 keepalive name to branch")
        hop = routes[0]['next_hops'][0]
        self.assertEqual(hop['distance'], 10)
        self.assertEqual(hop['filter'], 100)
        self.assertTrue(hop['permanent'])
        self.assertEqual(hop['name'], 'to branch')

    def test_interface_gateways(self):
        routes = parse_static_routes("ip route 10.1.0.0/16 gateway pp 1\n"
                                     "ip route 10.2.0.0/16 gateway tunnel 2\n"
                                     "ip route 10.3.0.0/16 gateway null")
        self.assertEqual([r['next_hops'][0]['interface'] for r in routes], ['pp 1', 'tunnel 2', 'null'])
        self.assertEqual(routes[0]['next_hops'][0]['next_hop'], '')

    def test_ecmp_and_grouping(self):
        routes = parse_static_routes("ip route default gateway 192.0.2.1 gateway 192.0.2.2 weight 2\n"
                                     "ip route 0.0.0.0/0 gateway pp 1")
        self.assertEqual(len(routes), 1)
        hops = routes[0]['next_hops']
        self.assertEqual([h['next_hop'] or h['interface'] for h in hops], ['192.0.2.1', '192.0.2.2', 'pp 1'])
        self.assertEqual(hops[1]['distance'], 2)

    def test_invalid_network_skipped(self):
        err = io.StringIO()
        with redirect_stderr(err):
            routes = parse_static_routes("ip route 10.0.0.0/40 gateway 192.0.2.1")
        self.assertEqual(routes, [])
        self.assertIn('Warning:', err.getvalue())

    def test_empty(self):
        self.assertEqual(parse_static_routes(''), [])
        self.assertEqual(parse_static_routes(None), [])


class TestDNS(unittest.TestCase):
    def test_defaults(self):
        config = parse_dns_config('')
        self.assertTrue(config['domain_lookup'])
        self.assertEqual(config['name_servers'], [])
        self.assertFalse(config['service_on'])

    def test_full_config(self):
        config = parse_dns_config(
            "dns server 8.8.8.8 8.8.4.4\n"
            "dns domain example.com\n"
            "dns service recursive\n"
            "dns private address spoof on\n"
            "no dns domain lookup\n"
            "dns static router.example.com 192.168.1.1\n"
            "dns server select 1 192.0.2.10 edns=on any example.local\n"
            "dns server select 500000 8.8.8.8 edns=on 8.8.4.4 edns=on any .")
        self.assertEqual(config['name_servers'], ['8.8.8.8', '8.8.4.4'])
        self.assertEqual(config['domain_name'], 'example.com')
        self.assertTrue(config['service_on'])
        self.assertTrue(config['private_spoof'])
        self.assertFalse(config['domain_lookup'])
        self.assertEqual(config['hosts'], [{'name': 'router.example.com', 'address': '192.168.1.1'}])

        first, second = config['server_select']
        self.assertEqual(first['id'], 1)
        self.assertEqual(first['servers'], [{'address': '192.0.2.10', 'edns': True}])
        self.assertEqual(first['record_type'], 'any')
        self.assertEqual(first['query_pattern'], 'example.local')
        self.assertEqual(second['id'], 500000)
        self.assertEqual(len(second['servers']), 2)
        self.assertEqual(second['query_pattern'], '.')

    def test_server_select_optional_fields(self):
        sel = parse_dns_server_select(10, "192.168.1.1 a internal.example 192.168.0.0/16 restrict pp 3")
        self.assertEqual(sel['record_type'], 'a')
        self.assertEqual(sel['original_sender'], '192.168.0.0/16')
        self.assertEqual(sel['restrict_pp'], 3)
        self.assertFalse(sel['servers'][0]['edns'])

    def test_server_select_incomplete(self):
        self.assertIsNone(parse_dns_server_select(1, "any example.local"))
        self.assertIsNone(parse_dns_server_select(1, "192.0.2.10 edns=on any"))

    def test_wrapped_line(self):
        config = parse_dns_config("dns server select 2 192.0.2.10 edns\n=on any example.local")
        sel = config['server_select'][0]
        self.assertEqual(sel['servers'], [{'address': '192.0.2.10', 'edns': True}])
        self.assertEqual(sel['query_pattern'], 'example.local')

    def test_service_off(self):
        self.assertFalse(parse_dns_config("dns service off")['service_on'])


class TestNATMasquerade(unittest.TestCase):
    def test_descriptor(self):
        descriptors = parse_nat_masquerade(
            "nat descriptor type 1 masquerade\n"
            "nat descriptor address outer 1 ipcp\n"
            "nat descriptor address inner 1 192.168.1.1-192.168.1.254\n"
            "nat descriptor masquerade static 1 1 203.0.113.1:80=192.168.1.100:8080 tcp")
        self.assertEqual(len(descriptors), 1)
        desc = descriptors[0]
        self.assertEqual(desc['descriptor_id'], 1)
        self.assertEqual(desc['outer_address'], 'ipcp')
        self.assertEqual(desc['inner_network'], '192.168.1.1-192.168.1.254')
        self.assertEqual(desc['static_entries'], [{
            'entry_number': 1, 'outside_global': '203.0.113.1', 'outside_global_port': 80,
            'inside_local': '192.168.1.100', 'inside_local_port': 8080, 'protocol': 'tcp',
        }])

    def test_short_static_form(self):
        descriptors = parse_nat_masquerade("nat descriptor type 1000 masquerade\n"
                                           "nat descriptor masquerade static 1000 1 192.0.2.253 tcp 22")
        entry = descriptors[0]['static_entries'][0]
        self.assertEqual(entry['inside_local'], '192.0.2.253')
        self.assertEqual(entry['outside_global'], '')
        self.assertEqual(entry['inside_local_port'], 22)
        self.assertEqual(entry['outside_global_port'], 22)

    def test_first_seen_order(self):
        descriptors = parse_nat_masquerade("nat descriptor type 20 masquerade\nnat descriptor type 3 masquerade")
        self.assertEqual([d['descriptor_id'] for d in descriptors], [20, 3])


class TestSyslog(unittest.TestCase):
    def test_config(self):
        config = parse_syslog_config("syslog host 192.168.1.10\nsyslog host 192.168.1.11 1514\n"
                                     "syslog local address 192.168.1.1\nsyslog facility local0\n"
                                     "syslog notice on\nsyslog debug off")
        self.assertEqual(config['hosts'], [{'address': '192.168.1.10', 'port': 0},
                                           {'address': '192.168.1.11', 'port': 1514}])
        self.assertEqual(config['local_address'], '192.168.1.1')
        self.assertEqual(config['facility'], 'local0')
        self.assertTrue(config['notice'])
        self.assertFalse(config['info'])
        self.assertFalse(config['debug'])


class TestSystem(unittest.TestCase):
    def test_config(self):
        config = parse_system_config('timezone +09:00\nconsole character ja.utf8\nconsole lines infinity\n'
                                     'console prompt "[TEST-RTX] "\n'
                                     'system packet-buffer small max-buffer=5000 max-free=1300\n'
                                     'statistics traffic on')
        self.assertEqual(config['timezone'], '+09:00')
        self.assertEqual(config['console'], {'character': 'ja.utf8', 'lines': 'infinity', 'prompt': '[TEST-RTX] '})
        self.assertEqual(config['packet_buffers'], [{'size': 'small', 'max_buffer': 5000, 'max_free': 1300}])
        self.assertEqual(config['statistics'], {'traffic': True, 'nat': False})

    def test_empty(self):
        config = parse_system_config('')
        self.assertIsNone(config['console'])
        self.assertIsNone(config['statistics'])


class TestTunnels(unittest.TestCase):
    def test_l2tpv3_tunnel(self):
        tunnels = parse_tunnel_config(
            "tunnel select 1\n"
            " description Branch office\n"
            " tunnel encapsulation l2tpv3\n"
            " tunnel endpoint address 192.168.1.253 192.168.1.254\n"
            " ipsec tunnel 101\n"
            "  ipsec sa policy 101 1 esp aes-cbc sha-hmac\n"
            "  ipsec ike keepalive use 1 on heartbeat 10 6\n"
            "  ipsec ike local address 1 192.168.1.253\n"
            "  ipsec ike pre-shared-key 1 text secret-key\n"
            "  ipsec ike remote address 1 192.168.1.254\n"
            " l2tp always-on on\n"
            " l2tp hostname rtx-a\n"
            " l2tp tunnel auth on l2tp-secret\n"
            " l2tp keepalive use on 60 3\n"
            " ip tunnel secure filter in 200 201 dynamic\n"
            " ip tunnel tcp mss limit auto\n"
            " tunnel enable 1")
        self.assertEqual(len(tunnels), 1)
        t = tunnels[0]
        self.assertEqual(t['id'], 1)
        self.assertEqual(t['description'], 'Branch office')
        self.assertEqual(t['encapsulation'], 'l2tpv3')
        self.assertEqual((t['endpoint_local'], t['endpoint_remote']), ('192.168.1.253', '192.168.1.254'))
        self.assertEqual(t['ipsec_tunnels'], [101])
        self.assertEqual(t['sa_policies'], [{'policy_id': 101, 'gateway_id': 1, 'protocol': 'esp',
                                             'algorithms': ['aes-cbc', 'sha-hmac']}])
        ike = t['ike'][1]
        self.assertEqual(ike['pre_shared_key'], 'secret-key')
        self.assertEqual(ike['keepalive'], {'mode': 'heartbeat', 'interval': 10, 'retry': 6})
        self.assertTrue(t['l2tp']['always_on'])
        self.assertEqual(t['l2tp']['hostname'], 'rtx-a')
        self.assertEqual(t['l2tp']['tunnel_auth'], {'enabled': True, 'password': 'l2tp-secret'})
        self.assertEqual(t['l2tp']['keepalive'], {'interval': 60, 'retry': 3})
        self.assertEqual(t['secure_filter_in'], [200, 201])
        self.assertEqual(t['tcp_mss_limit'], 'auto')
        self.assertTrue(t['enabled'])

    def test_ipsec_encapsulation_inferred(self):
        tunnels = parse_tunnel_config("tunnel select 2\n ipsec tunnel 2\n tunnel endpoint name vpn.example.com fqdn")
        self.assertEqual(tunnels[0]['encapsulation'], 'ipsec')
        self.assertEqual(tunnels[0]['endpoint_name'], 'vpn.example.com')
        self.assertEqual(tunnels[0]['endpoint_name_type'], 'fqdn')
        self.assertFalse(tunnels[0]['enabled'])

    def test_statements_before_select_ignored(self):
        tunnels = parse_tunnel_config("tunnel encapsulation ipip\ntunnel select 3\ntunnel select 4\n"
                                      " tunnel encapsulation ipip\ntunnel enable 3")
        self.assertEqual([t['id'] for t in tunnels], [3, 4])
        self.assertEqual(tunnels[0]['encapsulation'], '')
        self.assertTrue(tunnels[0]['enabled'])
        self.assertEqual(tunnels[1]['encapsulation'], 'ipip')

    def test_non_numeric_filter_warns(self):
        err = io.StringIO()
        with redirect_stderr(err):
            tunnels = parse_tunnel_config("tunnel select 1\n ip tunnel secure filter out 10 abc")
        self.assertEqual(tunnels[0]['secure_filter_out'], [10])
        self.assertIn("Ignoring non-numeric filter 'abc'", err.getvalue())


class TestPeers(unittest.TestCase):
    def test_numbered_and_anonymous(self):
        peers = parse_pp_config(
            "pp select 1\n"
            " description pp PROVIDER\n"
            " pp always-on on\n"
            " pppoe use lan2\n"
            " pp auth accept pap chap\n"
            " pp auth myname user@isp.example secret\n"
            " ip pp mtu 1454\n"
            " ip pp nat descriptor 1000\n"
            " pp enable 1\n"
            "pp select anonymous\n"
            " pp bind tunnel1\n"
            " pp auth request mschap-v2\n"
            " pp auth username vpnuser vpn-password\n"
            " ip pp remote address pool dhcp\n"
            " pp enable anonymous")
        self.assertEqual(len(peers), 2)
        isp, anon = peers
        self.assertEqual(isp['id'], 1)
        self.assertEqual(isp['description'], 'PROVIDER')
        self.assertTrue(isp['always_on'])
        self.assertEqual(isp['pppoe_use'], 'lan2')
        self.assertEqual(isp['auth_accept'], 'pap chap')
        self.assertEqual(isp['auth_myname'], {'username': 'user@isp.example', 'password': 'secret'})
        self.assertEqual(isp['mtu'], 1454)
        self.assertEqual(isp['nat_descriptor'], 1000)
        self.assertTrue(isp['enabled'])

        self.assertEqual(anon['name'], 'anonymous')
        self.assertEqual(anon['bind'], 'tunnel1')
        self.assertEqual(anon['auth_users'], [{'username': 'vpnuser', 'password': 'vpn-password'}])
        self.assertEqual(anon['remote_address_pool'], 'dhcp')
        self.assertTrue(anon['enabled'])

    def test_enable_without_select(self):
        peers = parse_pp_config("pp enable 2")
        self.assertEqual(peers[0]['id'], 2)
        self.assertTrue(peers[0]['enabled'])
        self.assertIsNone(peers[0]['always_on'])


class TestInterfaces(unittest.TestCase):
    def test_lan_settings(self):
        interfaces = parse_interface_config(
            'description lan1 "Office LAN"\n'
            "ip lan1 address 192.168.1.1/24\n"
            "ip lan1 proxyarp on\n"
            "ip lan2 address dhcp\n"
            "ip lan2 secure filter in 200000 200001 200099\n"
            "ip lan2 secure filter out 200010 200099 dynamic 200080 200081\n"
            "ip lan2 nat descriptor 1000\n"
            "ip lan2 mtu 1454\n"
            "ethernet lan1 filter in 1 2 100\n"
            "ip route default gateway 10.0.0.1")
        self.assertEqual(list(interfaces), ['lan1', 'lan2'])
        lan1, lan2 = interfaces['lan1'], interfaces['lan2']
        self.assertEqual(lan1['description'], 'Office LAN')
        self.assertEqual(lan1['address'], '192.168.1.1/24')
        self.assertTrue(lan1['proxyarp'])
        self.assertEqual(lan1['ethernet_filter_in'], [1, 2, 100])
        self.assertTrue(lan2['dhcp'])
        self.assertEqual(lan2['address'], '')
        self.assertEqual(lan2['secure_filter_in'], [200000, 200001, 200099])
        self.assertEqual(lan2['secure_filter_out'], [200010, 200099])
        self.assertEqual(lan2['dynamic_filter_out'], [200080, 200081])
        self.assertEqual(lan2['nat_descriptor'], 1000)
        self.assertEqual(lan2['mtu'], 1454)
        self.assertIsNone(lan2['proxyarp'])

    def test_unquoted_description(self):
        interfaces = parse_interface_config("description lan3 uplink")
        self.assertEqual(interfaces['lan3']['description'], 'uplink')


class TestIPFilters(unittest.TestCase):
    def test_static_filters(self):
        filters = parse_ip_filters(
            "ip filter 200000 reject 10.0.0.0/8 * * * *\n"
            "ip filter 200020 reject * * udp,tcp 135 *\n"
            "ip filter 200030 pass * 192.168.1.0/24 tcp * www established\n"
            "ip filter 200099 pass * * *\n"
            "ip filter dynamic 200080 * * ftp")
        self.assertEqual([f['number'] for f in filters], [200000, 200020, 200030, 200099])
        self.assertEqual(filters[0]['source_address'], '10.0.0.0/8')
        self.assertEqual((filters[1]['source_port'], filters[1]['dest_port']), ('135', '*'))
        self.assertTrue(filters[2]['established'])
        self.assertEqual(filters[2]['dest_port'], 'www')
        self.assertEqual(filters[3]['protocol'], '*')
        self.assertEqual(filters[3]['source_port'], '')
        self.assertFalse(filters[3]['established'])

    def test_unknown_action_warns(self):
        err = io.StringIO()
        with redirect_stderr(err):
            filters = parse_ip_filters("ip filter 1 drop * * *")
        self.assertEqual(filters[0]['action'], 'drop')
        self.assertIn("Unknown action 'drop'", err.getvalue())


class TestDHCPScopes(unittest.TestCase):
    def test_scope_options(self):
        scopes = parse_dhcp_scopes(
            "dhcp scope 1 192.168.1.100-192.168.1.199/24 gateway 192.168.1.1 expire 12:00 maxexpire 24:00\n"
            "dhcp scope 2 10.0.0.10-10.0.0.20/24 dns 10.0.0.1 10.0.0.2 domain example.local expire 90")
        first, second = scopes
        self.assertEqual(first['scope_id'], 1)
        self.assertEqual((first['range_start'], first['range_end'], first['prefix']),
                         ('192.168.1.100', '192.168.1.199', 24))
        self.assertEqual(first['gateway'], '192.168.1.1')
        self.assertEqual(first['lease'], 43200)
        self.assertEqual(first['max_lease'], 86400)
        self.assertEqual(second['dns_servers'], ['10.0.0.1', '10.0.0.2'])
        self.assertEqual(second['domain_name'], 'example.local')
        self.assertEqual(second['lease'], 90 * 60)

    def test_invalid_range_skipped(self):
        err = io.StringIO()
        with redirect_stderr(err):
            scopes = parse_dhcp_scopes("dhcp scope 3 192.168.1.0/24\ndhcp scope 4 10.0.0.1-10.0.0.9/33")
        self.assertEqual(scopes, [])
        self.assertIn('dhcp scope 3', err.getvalue())

    def test_lease_time(self):
        self.assertEqual(parse_lease_time('1:30'), 5400)
        self.assertEqual(parse_lease_time('1440'), 86400)
        self.assertIsNone(parse_lease_time('1:75'))
        self.assertIsNone(parse_lease_time('forever'))


class TestAdmin(unittest.TestCase):
    def test_users_and_attributes(self):
        config = parse_admin_config(
            "login password login-secret\n"
            "administrator password admin-secret\n"
            "login user alice encrypted ABCDEF0123\n"
            "login user bob plain-password\n"
            "user attribute alice administrator=off connection=ssh,sftp gui-page=dashboard login-timer=300\n"
            "user attribute carol connection=telnet")
        self.assertEqual(config['login_password'], 'login-secret')
        self.assertEqual(config['admin_password'], 'admin-secret')
        alice, bob, carol = config['users']
        self.assertTrue(alice['encrypted'])
        self.assertEqual(alice['password'], 'ABCDEF0123')
        self.assertEqual(alice['attributes'], {'administrator': False, 'connection': ['ssh', 'sftp'],
                                               'gui_pages': ['dashboard'], 'login_timer': 300})
        self.assertEqual(bob['password'], 'plain-password')
        self.assertFalse(bob['encrypted'])
        self.assertIsNone(bob['attributes']['administrator'])
        self.assertEqual(carol['password'], '')
        self.assertTrue(carol['attributes']['administrator'])

    def test_attribute_values(self):
        attrs = parse_user_attributes("administrator=2 connection=none")
        self.assertTrue(attrs['administrator'])
        self.assertEqual(attrs['connection'], [])
        self.assertIsNone(attrs['login_timer'])


if __name__ == '__main__':
    unittest.main()
