import unittest

from kube_azure_dns.records import build_record_set, classify, to_azure_record_set


class TestClassify(unittest.TestCase):

    def test_partitions_by_family(self):
        ipv4, ipv6 = classify(['10.0.0.1', 'fd00::1', '10.0.0.2', '2001:db8::5'])

        self.assertEqual(ipv4, ['10.0.0.1', '10.0.0.2'])
        self.assertEqual(ipv6, ['fd00::1', '2001:db8::5'])

    def test_buckets_are_disjoint_and_cover_valid_input(self):
        addresses = ['10.0.0.1', 'fd00::1', 'bogus', '', None, '300.1.1.1', 'fd00::zz', '10.0.0.1']

        with self.assertLogs(level='WARNING') as logs:
            ipv4, ipv6 = classify(addresses)

        self.assertFalse(set(ipv4) & set(ipv6))
        self.assertEqual(set(ipv4) | set(ipv6), {'10.0.0.1', 'fd00::1'})
        self.assertEqual(len(logs.output), 5)

    def test_scoped_ipv6_address_is_dropped(self):
        with self.assertLogs(level='WARNING') as logs:
            ipv4, ipv6 = classify(['fe80::1%eth0', 'fd00::1', '10.0.0.1'])

        self.assertEqual(ipv4, ['10.0.0.1'])
        self.assertEqual(ipv6, ['fd00::1'])
        self.assertEqual(len(logs.output), 1)

    def test_duplicates_collapse_in_first_seen_order(self):
        ipv4, _ = classify(['10.0.0.2', '10.0.0.1', '10.0.0.2'])

        self.assertEqual(ipv4, ['10.0.0.2', '10.0.0.1'])

    def test_empty_input(self):
        self.assertEqual(classify([]), ([], []))
        self.assertEqual(classify(None), ([], []))


class TestRecordSets(unittest.TestCase):

    def test_build_record_set(self):
        record_set = build_record_set('web.default.svc', 'A', ['10.0.0.5', '10.0.0.5'], 300)

        self.assertEqual(record_set.name, 'web.default.svc')
        self.assertEqual(record_set.kind, 'A')
        self.assertEqual(record_set.addresses, ('10.0.0.5',))
        self.assertEqual(record_set.ttl, 300)

    def test_unknown_kind_is_rejected(self):
        with self.assertRaises(ValueError):
            build_record_set('web.default.svc', 'SRV', [], 300)

    def test_a_record_shape(self):
        params = to_azure_record_set(build_record_set('web', 'A', ['10.0.0.5', '10.0.0.6'], 300))

        self.assertEqual(params.ttl, 300)
        self.assertEqual([r.ipv4_address for r in params.a_records], ['10.0.0.5', '10.0.0.6'])
        self.assertFalse(params.aaaa_records)

    def test_aaaa_record_shape(self):
        params = to_azure_record_set(build_record_set('web', 'AAAA', ['fd00::1'], 120))

        self.assertEqual(params.ttl, 120)
        self.assertEqual([r.ipv6_address for r in params.aaaa_records], ['fd00::1'])

    def test_txt_record_shape(self):
        params = to_azure_record_set(build_record_set('dns-version', 'TXT', ['1.1.0'], 300))

        self.assertEqual([r.value for r in params.txt_records], [['1.1.0']])


if __name__ == '__main__':
    unittest.main()
