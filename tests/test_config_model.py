import dataclasses
import unittest

from config_model import Context, ContextKind, ContextRegistry, ParsedConfig, RouterModel, Statement


class TestContext(unittest.TestCase):
    def test_equality_includes_name(self):
        self.assertEqual(Context(ContextKind.TUNNEL, 1), Context(ContextKind.TUNNEL, 1))
        self.assertNotEqual(Context(ContextKind.PEER, 0, 'anonymous'), Context(ContextKind.PEER, 0))
        self.assertNotEqual(Context(ContextKind.TUNNEL, 1), Context(ContextKind.IPSEC_TUNNEL, 1))

    def test_selector_line_and_key(self):
        self.assertEqual(Context(ContextKind.TUNNEL, 1).selector_line, 'tunnel select 1')
        self.assertEqual(Context(ContextKind.PEER, 0, 'anonymous').selector_line, 'pp select anonymous')
        self.assertEqual(Context(ContextKind.IPSEC_TUNNEL, 101).selector_line, 'ipsec tunnel 101')
        self.assertEqual(Context(ContextKind.IPSEC_TUNNEL, 101).key, 'ipsec-tunnel:101')
        self.assertEqual(str(Context(ContextKind.PEER, 2)), 'pp select 2')


class TestContextRegistry(unittest.TestCase):
    def test_insertion_order_and_dedup(self):
        registry = ContextRegistry()
        self.assertTrue(registry.add(Context(ContextKind.PEER, 0, 'anonymous')))
        self.assertTrue(registry.add(Context(ContextKind.TUNNEL, 1)))
        self.assertFalse(registry.add(Context(ContextKind.TUNNEL, 1)))
        self.assertEqual(len(registry), 2)
        self.assertIn(Context(ContextKind.TUNNEL, 1), registry)
        self.assertEqual(registry.as_list()[0].name, 'anonymous')


class TestParsedConfig(unittest.TestCase):
    def setUp(self):
        tunnel = Context(ContextKind.TUNNEL, 1)
        self.tunnel = tunnel
        self.parsed = ParsedConfig(
            statements=[
                Statement('login password x', None, 1),
                Statement('tunnel encapsulation ipip', tunnel, 3, 1),
                Statement('tunnel enable 1', tunnel, 4, 1),
                Statement('ip lan1 mtu 1500', None, 5),
            ],
            contexts=[tunnel, Context(ContextKind.PEER, 2)],
        )

    def test_partitions(self):
        self.assertEqual([s.line_number for s in self.parsed.global_statements()], [1, 5])
        self.assertEqual([s.line_number for s in self.parsed.statements_in(self.tunnel)], [3, 4])
        self.assertEqual(self.parsed.contexts_of_kind(ContextKind.PEER), [Context(ContextKind.PEER, 2)])
        self.assertEqual(len(self.parsed.filter(lambda s: s.indent_level > 0)), 2)

    def test_frozen(self):
        with self.assertRaises(dataclasses.FrozenInstanceError):
            self.parsed.contexts = []
        self.assertEqual(self.parsed.ipsec_parents, [])

    def test_context_summary(self):
        rows = self.parsed.context_summary()
        self.assertEqual(rows[0]['context'], 'global')
        self.assertEqual((rows[0]['first_line'], rows[0]['last_line']), (1, 5))
        self.assertEqual(rows[1]['statements'], 2)
        self.assertEqual(rows[2]['context'], 'pp select 2')
        self.assertEqual(rows[2]['statements'], 0)
        self.assertIsNone(rows[2]['first_line'])


class TestRouterModel(unittest.TestCase):
    def test_section_counts(self):
        model = RouterModel()
        model.dns = {'name_servers': ['8.8.8.8', '8.8.4.4']}
        model.tunnels = {1: {}, 2: {}}
        counts = model.section_counts()
        self.assertEqual(counts['DNS Servers'], 2)
        self.assertEqual(counts['Tunnels'], 2)
        self.assertEqual(counts['Static Routes'], 0)
        self.assertEqual(counts['Interfaces'], 0)
        model.admin = {'users': [{'username': 'alice'}]}
        self.assertEqual(model.section_counts()['Login Users'], 1)


if __name__ == '__main__':
    unittest.main()
