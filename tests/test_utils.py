import io
import os
import unittest
from contextlib import redirect_stdout

from extractors import build_model
from rtxparser import classify
from utils import build_report_html, get_table_dataframe, print_table, section_frames, statements_dataframe


FIXTURE = os.path.join(os.path.dirname(__file__), 'fixtures', 'rtx_sample.txt')


class TestPrintTable(unittest.TestCase):
    def _render(self, *args):
        out = io.StringIO()
        with redirect_stdout(out):
            print_table(*args)
        return out.getvalue().splitlines()

    def test_columns_are_aligned(self):
        lines = self._render("Tunnels", ["ID", "Encapsulation"], [[1, 'l2tpv3'], [12, '-']])
        self.assertEqual(lines[1], 'Tunnels')
        self.assertEqual(lines[2], '+----+---------------+')
        self.assertEqual(lines[3], '| ID | Encapsulation |')
        self.assertEqual(lines[5], '| 1  | l2tpv3        |')
        self.assertEqual(lines[6], '| 12 | -             |')
        self.assertEqual(len({len(l) for l in lines[2:]}), 1)

    def test_empty_rows(self):
        lines = self._render("Syslog Hosts", ["Address", "Port"], [])
        self.assertIn('(none)', lines[5])

    def test_short_row_padded(self):
        lines = self._render("T", ["A", "B"], [['x']])
        self.assertEqual(lines[5], '| x |   |')


class TestDataFrames(unittest.TestCase):
    def test_selected_and_renamed(self):
        df = get_table_dataframe([{'id': 1, 'description': None, 'extra': 'x'}],
                                 ['id', 'description', 'missing'], {'id': 'ID', 'description': 'Description'})
        self.assertEqual(list(df.columns), ['ID', 'Description'])
        self.assertEqual(df.iloc[0]['Description'], '-')

    def test_empty_data(self):
        df = get_table_dataframe([], ['id', 'name'], {'id': 'ID'})
        self.assertEqual(list(df.columns), ['ID', 'name'])
        self.assertTrue(df.empty)

    def test_statements(self):
        parsed = classify("ip lan1 address 192.168.1.1/24\ntunnel select 1\n tunnel encapsulation ipip")
        df = statements_dataframe(parsed.statements)
        self.assertEqual(list(df.columns), ['Line', 'Context', 'Indent', 'Statement'])
        self.assertEqual(list(df['Context']), ['global', 'tunnel select 1'])
        self.assertEqual(list(df['Line']), [1, 3])


class TestReport(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        with open(FIXTURE, encoding='utf-8') as f:
            cls.parsed = classify(f.read())
        cls.model = build_model(cls.parsed)

    def test_section_frames(self):
        frames = dict(section_frames(self.model))
        self.assertEqual(list(frames['Interfaces']['Address']), ['192.0.2.253/24'])
        self.assertEqual(list(frames['IP Filters']['Number']), [200020])
        self.assertEqual(list(frames['DHCP Scopes']['Range']), ['192.0.2.100-192.0.2.199/24'])
        self.assertEqual(list(frames['Login Users']['User']), ['testuser'])
        self.assertNotIn('Password', frames['Login Users'].columns)

    def test_file_name_is_escaped(self):
        report = build_report_html('<script>alert(1)</script>', self.parsed, self.model)
        self.assertNotIn('<script>', report)
        self.assertIn('<h1>RTX Configuration Report: &lt;script&gt;alert(1)&lt;/script&gt;</h1>', report)
        self.assertNotIn('test-login-password-123', report)

    def test_diff_appended(self):
        report = build_report_html('config', self.parsed, self.model, diff_html='<p>diff</p>')
        self.assertIn('<h2>Configuration Differences</h2>\n<p>diff</p>', report)
        self.assertTrue(report.endswith('</body></html>'))


if __name__ == '__main__':
    unittest.main()
