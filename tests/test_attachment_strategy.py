# tests/test_attachment_strategy.py

import unittest
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from attachment_strategy import (BundleStrategy, IgnoreStrategy, PerAttachmentStrategy,
                                 attachment_template_data, filter_attachments_by_size,
                                 new_attachment_strategy, render_field_name)
from config_loader import AttachmentsConfig
from errors import ConfigurationError
from mail_message import Attachment, Message
from outbound_request import OutboundRequest

ONE_MB = 1000 * 1000


class TestSizeFilter(unittest.TestCase):
    """Unit tests for dropping oversized attachments."""

    def setUp(self):
        self.small = Attachment(name='a.txt', content=b'x' * 2000)
        self.large = Attachment(name='b.bin', content=b'x' * (10 * ONE_MB))

    def test_drops_attachments_above_limit(self):
        with self.assertLogs('attachment_strategy', level='WARNING') as cm:
            kept = filter_attachments_by_size([self.small, self.large], ONE_MB)
        self.assertEqual(kept, [self.small])
        self.assertIn("b.bin", cm.output[0])

    def test_zero_means_unlimited(self):
        self.assertEqual(filter_attachments_by_size([self.small, self.large], 0), [self.small, self.large])

    def test_limit_is_inclusive(self):
        exact = Attachment(name='exact', content=b'x' * 10)
        self.assertEqual(filter_attachments_by_size([exact], 10), [exact])

    def test_filtering_is_idempotent(self):
        once = filter_attachments_by_size([self.small, self.large, self.small], ONE_MB)
        twice = filter_attachments_by_size(once, ONE_MB)
        self.assertEqual(once, twice)


class TestFieldNames(unittest.TestCase):
    """Unit tests for rendering multipart field names."""

    def test_template_data(self):
        data = attachment_template_data(2, Attachment(name='docs/report.final.pdf', content=b''))
        self.assertEqual(data, {
            'index': '2',
            'filename': 'report.final.pdf',
            'basename': 'report.final',
            'extension': 'pdf',
            'contentType': 'application/pdf',
        })

    def test_unknown_extension_falls_back_to_octet_stream(self):
        data = attachment_template_data(0, Attachment(name='blob', content=b''))
        self.assertEqual(data['contentType'], 'application/octet-stream')
        self.assertEqual(data['extension'], '')

    def test_selected_values_are_available(self):
        field = render_field_name('${invoiceId}_${basename}_${index}', 0,
                                  Attachment(name='report.pdf', content=b''), {'invoiceId': '123'})
        self.assertEqual(field, '123_report_0')

    def test_attachment_values_take_precedence(self):
        field = render_field_name('file${index}', 1, Attachment(name='a.txt', content=b''), {'index': 'selected'})
        self.assertEqual(field, 'file1')


class TestStrategies(unittest.TestCase):
    """Unit tests for folding attachments into callback requests."""

    def setUp(self):
        self.base = OutboundRequest(method='POST', url='https://hooks.example.com/mail', multipart=True,
                                    form=(('kind', 'invoice'),))
        self.a = Attachment(name='a.pdf', content=b'x' * 2000)
        self.b = Attachment(name='b.pdf', content=b'x' * (10 * ONE_MB))
        self.message = Message(id='m1', subject='Invoice', attachments=[self.a, self.b])

    def _config(self, strategy, max_size_bytes=ONE_MB, field_name='attachment'):
        return AttachmentsConfig(strategy=strategy, field_name=field_name, max_size_bytes=max_size_bytes)

    def test_ignore_returns_base_request(self):
        requests = IgnoreStrategy(self._config('ignore')).build_requests(self.base, self.message, {})
        self.assertEqual(requests, [self.base])

    def test_per_attachment_skips_oversized_attachment(self):
        requests = PerAttachmentStrategy(self._config('perAttachment')).build_requests(self.base, self.message, {})
        self.assertEqual(len(requests), 1)
        self.assertEqual(len(requests[0].files), 1)
        self.assertEqual(requests[0].files[0].filename, 'a.pdf')
        self.assertEqual(requests[0].form, (('kind', 'invoice'),))

    def test_per_attachment_emits_one_request_per_attachment_in_order(self):
        message = Message(id='m2', attachments=[Attachment(name='1.txt', content=b'1'),
                                                Attachment(name='2.txt', content=b'2')])
        strategy = PerAttachmentStrategy(self._config('perAttachment', 0, 'file${index}'))
        requests = strategy.build_requests(self.base, message, {})
        self.assertEqual([r.files[0].filename for r in requests], ['1.txt', '2.txt'])
        self.assertEqual([r.files[0].field for r in requests], ['file0', 'file1'])
        self.assertTrue(all(len(r.files) == 1 for r in requests))

    def test_per_attachment_without_qualifying_attachments_sends_single_request(self):
        message = Message(id='m3', attachments=[self.b])
        requests = PerAttachmentStrategy(self._config('perAttachment')).build_requests(self.base, message, {})
        self.assertEqual(requests, [self.base])
        self.assertEqual(requests[0].files, ())

    def test_bundle_attaches_qualifying_attachments_to_one_request(self):
        requests = BundleStrategy(self._config('bundle')).build_requests(self.base, self.message, {})
        self.assertEqual(len(requests), 1)
        self.assertEqual(len(requests[0].files), 1)
        self.assertEqual(requests[0].files[0].content, self.a.content)
        self.assertEqual(requests[0].files[0].content_type, 'application/pdf')

    def test_bundle_unlimited_attaches_everything(self):
        requests = BundleStrategy(self._config('bundle', 0, 'att${index}')).build_requests(self.base, self.message, {})
        self.assertEqual([f.field for f in requests[0].files], ['att0', 'att1'])

    def test_nameless_attachment_uses_field_name_as_filename(self):
        message = Message(id='m4', attachments=[Attachment(name='', content=b'data')])
        requests = BundleStrategy(self._config('bundle', 0, 'upload')).build_requests(self.base, message, {})
        self.assertEqual(requests[0].files[0].filename, 'upload')

    def test_factory(self):
        self.assertIsInstance(new_attachment_strategy(self._config('ignore')), IgnoreStrategy)
        self.assertIsInstance(new_attachment_strategy(self._config('bundle')), BundleStrategy)
        self.assertIsInstance(new_attachment_strategy(self._config('perAttachment')), PerAttachmentStrategy)
        with self.assertRaises(ConfigurationError):
            new_attachment_strategy(self._config('zip'))


if __name__ == '__main__':
    unittest.main()
