# tests/test_request_composer.py

import unittest
import os
import sys
from dataclasses import replace

import httpx

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from config_loader import AttachmentsConfig, CallbackConfig
from errors import CompositionError
from mail_message import Attachment, Message
from mail_selectors import SelectorConfig, build_selector_prototypes, evaluate_all
from request_composer import compose

BASE_CALLBACK = CallbackConfig(url='https://hooks.example.com/mail', method='POST')


class TestCompose(unittest.TestCase):
    """Unit tests for turning an email and its selected values into callback requests."""

    def setUp(self):
        self.client = httpx.Client()
        self.message = Message(id='m1', sender='billing@example.com', subject='Invoice #123', body='Total: 42.00')
        self.values = {'invoiceId': '123', 'total': '42.00'}

    def tearDown(self):
        self.client.close()

    def _build(self, outbound):
        request = outbound.build(self.client)
        request.read()
        return request

    def test_invoice_body_end_to_end(self):
        prototypes = build_selector_prototypes([
            SelectorConfig(name='invoiceId', kind='subject', pattern='#(\\d+)', capture_group=1),
            SelectorConfig(name='total', kind='body', pattern='Total: ([\\d.]+)', capture_group=1),
        ])
        values = evaluate_all(self.message, prototypes)
        callback = replace(BASE_CALLBACK, body='{"id":"${invoiceId}","total":"${total}"}')

        requests = compose(self.message, values, callback)

        self.assertEqual(len(requests), 1)
        self.assertEqual(requests[0].content, b'{"id":"123","total":"42.00"}')
        request = self._build(requests[0])
        self.assertEqual(request.content, b'{"id":"123","total":"42.00"}')

    def test_raw_body_has_no_implicit_content_type(self):
        callback = replace(BASE_CALLBACK, body='id=${invoiceId}')
        request = self._build(compose(self.message, self.values, callback)[0])
        self.assertNotIn('content-type', request.headers)

    def test_configured_content_type_is_kept(self):
        callback = replace(BASE_CALLBACK, body='{}', headers=(('Content-Type', 'application/json'),))
        request = self._build(compose(self.message, self.values, callback)[0])
        self.assertEqual(request.headers['content-type'], 'application/json')

    def test_headers_and_query_parameters_are_expanded(self):
        callback = replace(
            BASE_CALLBACK,
            headers=(('X-Invoice-Id', '${invoiceId}'), ('X-Missing', 'v${unknown}')),
            query_params=(('id', '${invoiceId}'), ('total', '${total}'), ('id', 'again')),
        )
        requests = compose(self.message, self.values, callback)
        request = self._build(requests[0])
        self.assertEqual(request.headers['x-invoice-id'], '123')
        self.assertEqual(request.headers['x-missing'], 'v')
        self.assertEqual(request.url.params.get_list('id'), ['123', 'again'])
        self.assertEqual(request.url.params['total'], '42.00')
        self.assertEqual(request.method, 'POST')

    def test_no_form_body_or_attachments_means_no_body(self):
        callback = replace(BASE_CALLBACK, method='GET')
        requests = compose(self.message, self.values, callback)
        self.assertEqual(len(requests), 1)
        self.assertFalse(requests[0].multipart)
        self.assertIsNone(requests[0].content)
        self.assertEqual(self._build(requests[0]).content, b'')

    def test_form_fields_build_multipart_body(self):
        callback = replace(BASE_CALLBACK, form=(('invoiceId', '${invoiceId}'), ('source', 'gmail')),
                           body='ignored ${total}')
        requests = compose(self.message, self.values, callback)

        self.assertEqual(len(requests), 1)
        self.assertTrue(requests[0].multipart)
        self.assertEqual(requests[0].form, (('invoiceId', '123'), ('source', 'gmail')))
        request = self._build(requests[0])
        self.assertTrue(request.headers['content-type'].startswith('multipart/form-data'))
        self.assertIn(b'name="invoiceId"', request.content)
        self.assertIn(b'123', request.content)
        self.assertNotIn(b'ignored', request.content)

    def test_attachments_are_bundled_by_default(self):
        message = replace(self.message, attachments=(Attachment(name='invoice.pdf', content=b'%PDF-1.4'),))
        requests = compose(message, self.values, BASE_CALLBACK)

        self.assertEqual(len(requests), 1)
        self.assertEqual(len(requests[0].files), 1)
        request = self._build(requests[0])
        self.assertIn(b'name="attachment"', request.content)
        self.assertIn(b'filename="invoice.pdf"', request.content)
        self.assertIn(b'%PDF-1.4', request.content)

    def test_per_attachment_strategy_branches_into_several_requests(self):
        message = replace(self.message, attachments=(Attachment(name='a.txt', content=b'A'),
                                                     Attachment(name='b.txt', content=b'B')))
        callback = replace(BASE_CALLBACK, attachments=AttachmentsConfig(strategy='perAttachment',
                                                                        field_name='file${index}'))
        requests = compose(message, self.values, callback)
        self.assertEqual([r.files[0].field for r in requests], ['file0', 'file1'])

    def test_ignored_attachments_fall_back_to_raw_body(self):
        message = replace(self.message, attachments=(Attachment(name='a.txt', content=b'A'),))
        callback = replace(BASE_CALLBACK, body='${invoiceId}', attachments=AttachmentsConfig(strategy='ignore'))
        requests = compose(message, self.values, callback)
        self.assertFalse(requests[0].multipart)
        self.assertEqual(requests[0].content, b'123')

    def test_invalid_url(self):
        with self.assertRaises(CompositionError):
            compose(self.message, self.values, replace(BASE_CALLBACK, url='not a url'))

    def test_invalid_method(self):
        with self.assertRaises(CompositionError):
            compose(self.message, self.values, replace(BASE_CALLBACK, method=''))


if __name__ == '__main__':
    unittest.main()
