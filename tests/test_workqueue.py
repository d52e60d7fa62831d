import threading
import unittest

from kube_azure_dns.workqueue import WorkQueue


class TestWorkQueue(unittest.TestCase):

    def setUp(self):
        self.queue = WorkQueue(base_delay=0.01, max_delay=0.05)

    def tearDown(self):
        self.queue.shutdown()

    def test_duplicate_adds_are_collapsed(self):
        self.queue.add('default/web')
        self.queue.add('default/web')
        self.queue.add('prod/api')

        self.assertEqual(len(self.queue), 2)
        self.assertEqual(self.queue.get(timeout=1), 'default/web')
        self.assertEqual(self.queue.get(timeout=1), 'prod/api')

    def test_key_in_flight_is_not_handed_out_twice(self):
        self.queue.add('default/web')
        key = self.queue.get(timeout=1)

        self.queue.add('default/web')

        self.assertEqual(len(self.queue), 0)
        self.assertIsNone(self.queue.get(timeout=0.05))

        self.queue.done(key)

        self.assertEqual(self.queue.get(timeout=1), 'default/web')

    def test_done_without_new_add_does_not_requeue(self):
        self.queue.add('default/web')
        self.queue.done(self.queue.get(timeout=1))

        self.assertEqual(len(self.queue), 0)

    def test_backoff_grows_and_is_capped(self):
        delays = [self.queue.backoff('default/web') for _ in range(5)]

        self.assertEqual(delays[:3], [0.01, 0.02, 0.04])
        self.assertEqual(delays[3:], [0.05, 0.05])
        self.assertEqual(self.queue.num_requeues('default/web'), 5)

        self.queue.forget('default/web')

        self.assertEqual(self.queue.num_requeues('default/web'), 0)

    def test_rate_limited_add_comes_back(self):
        self.queue.add_rate_limited('default/web')

        self.assertEqual(self.queue.get(timeout=1), 'default/web')
        self.assertEqual(self.queue.num_requeues('default/web'), 1)

    def test_shutdown_releases_waiting_workers(self):
        results = []
        worker = threading.Thread(target=lambda: results.append(self.queue.get()))
        worker.start()

        self.queue.shutdown()
        worker.join(timeout=1)

        self.assertFalse(worker.is_alive())
        self.assertEqual(results, [None])

    def test_add_after_shutdown_is_ignored(self):
        self.queue.shutdown()
        self.queue.add('default/web')

        self.assertEqual(len(self.queue), 0)


if __name__ == '__main__':
    unittest.main()
