import io
import os
import tempfile
import unittest
import sys
from pathlib import Path

from PIL import Image

# Add project root to sys.path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# Keep logs out of the project tree during tests
os.environ.setdefault('ENHANCEMD_LOG_DIR', tempfile.mkdtemp(prefix='enhancemd-logs-'))

import enhancemd.app as app_module
from enhancemd.core.session import EditingSession
from enhancemd.core.store import MemoryStore


def png_file(name='logo.png'):
    buffer = io.BytesIO()
    Image.new('RGB', (6, 6), (10, 20, 30)).save(buffer, format='PNG')
    buffer.seek(0)
    return buffer, name


class TestEditorApi(unittest.TestCase):
    def setUp(self):
        app_module.SESSION = EditingSession(MemoryStore(), debounce_seconds=0, min_batch_seconds=0)
        app_module.app.config['TESTING'] = True
        self.client = app_module.app.test_client()

    def test_version(self):
        response = self.client.get('/api/version')
        self.assertEqual(response.get_json()['version'], app_module.VERSION)

    def test_render(self):
        response = self.client.post('/api/render', json={
            'content': 'Hello {{city}}! [progress:42:Done]',
            'variables': [{'name': 'city', 'value': 'Paris'}],
        })
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertTrue(data['markdown'].startswith('Hello Paris! '))
        self.assertEqual([c['payload'] for c in data['components'].values()], [{'value': 42, 'label': 'Done'}])
        self.assertIn('data-value="42"', data['html'])
        self.assertEqual(data['diagnostics'], [])

    def test_render_reports_diagnostics(self):
        data = self.client.post('/api/render', json={'content': '{{= 1 / 0 }}', 'html': False}).get_json()
        self.assertEqual(data['diagnostics'][0]['kind'], 'ExpressionEvalFailed')
        self.assertEqual(data['html'], '')

    def test_debounced_render_publishes_latest(self):
        self.assertEqual(self.client.get('/api/render/latest').status_code, 404)

        response = self.client.post('/api/render', json={'content': '# Draft', 'debounce': True})
        self.assertEqual(response.status_code, 202)
        app_module.SESSION.pipeline.debouncer.flush()

        data = self.client.get('/api/render/latest').get_json()
        self.assertEqual(data['markdown'], '# Draft')
        self.assertIn('Draft</h1>', data['html'])

    def test_render_requires_content(self):
        self.assertEqual(self.client.post('/api/render', json={}).status_code, 400)

    def test_render_rejects_bad_variable_type(self):
        response = self.client.post('/api/render', json={
            'content': 'x', 'variables': [{'name': 'a', 'value': '1', 'type': 'color'}],
        })
        self.assertEqual(response.status_code, 400)

    def test_variable_crud(self):
        response = self.client.post('/api/variables', json={'name': 'team', 'value': 'Core'})
        self.assertEqual(response.status_code, 201)

        response = self.client.patch('/api/variables/team', json={'value': 'Platform'})
        self.assertEqual(response.get_json()['value'], 'Platform')
        self.assertEqual(self.client.get('/api/variables').get_json(),
                         [{'name': 'team', 'value': 'Platform', 'type': 'text'}])

        self.assertEqual(self.client.delete('/api/variables/team').status_code, 200)
        self.assertEqual(self.client.delete('/api/variables/team').status_code, 404)
        self.assertEqual(self.client.patch('/api/variables/team', json={'value': 'x'}).status_code, 404)

    def test_templates(self):
        ids = [t['id'] for t in self.client.get('/api/templates').get_json()]
        self.assertEqual(ids, ['proposal', 'meeting-notes', 'report'])

        loaded = self.client.post('/api/templates/proposal/load').get_json()
        self.assertIn('Your Company Business Proposal', loaded['content'])
        self.assertEqual(len(self.client.get('/api/variables').get_json()), len(loaded['variables']))

        saved = self.client.post('/api/templates', json={'name': 'Mine', 'content': 'Hi {{companyName}}'})
        self.assertEqual(saved.status_code, 201)
        saved = saved.get_json()
        self.assertTrue(saved['id'].startswith('user-'))
        self.assertEqual(len(saved['variables']), len(loaded['variables']))

        self.assertEqual(self.client.delete('/api/templates/proposal').status_code, 403)
        self.assertEqual(self.client.delete(f"/api/templates/{saved['id']}").status_code, 200)
        self.assertEqual(self.client.delete(f"/api/templates/{saved['id']}").status_code, 404)
        self.assertEqual(self.client.post('/api/templates/nope/load').status_code, 404)

    def test_image_upload(self):
        self.client.post('/api/render', json={'content': '![Logo](./images/logo.png)'})
        response = self.client.post('/api/images', data={'files': [png_file()]},
                                    content_type='multipart/form-data')
        self.assertEqual(response.status_code, 200)
        data = response.get_json()
        self.assertEqual(data['added'], ['logo.png'])
        self.assertEqual(data['status']['matched'], 1)
        self.assertEqual(self.client.get('/api/images').get_json()['images'], ['logo.png'])

        self.assertEqual(self.client.delete('/api/images').status_code, 200)
        self.assertEqual(self.client.get('/api/images').get_json()['images'], [])

    def test_image_upload_requires_files(self):
        response = self.client.post('/api/images', data={}, content_type='multipart/form-data')
        self.assertEqual(response.status_code, 400)


class TestExportApi(unittest.TestCase):
    def setUp(self):
        app_module.SESSION = EditingSession(MemoryStore(), debounce_seconds=0, min_batch_seconds=0)
        self.client = app_module.app.test_client()

    def test_markdown_export(self):
        response = self.client.post('/api/export/md', json={
            'content': '# Plan\n\n[progress:{{p}}:Done]\n',
            'variables': [{'name': 'p', 'value': '42', 'type': 'number'}],
        })
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.mimetype, 'text/markdown')
        self.assertIn('Plan.md', response.headers['Content-Disposition'])
        self.assertEqual(response.data.decode('utf-8'), '# Plan\n\n[progress:42:Done]\n')

    def test_html_export(self):
        response = self.client.post('/api/export/html', json={'content': '# Plan\n\n:::tip\nGo\n:::'})
        self.assertEqual(response.mimetype, 'text/html')
        self.assertIn(b'smart-alert-tip', response.data)

    def test_missing_exporter(self):
        response = self.client.post('/api/export/pdf', json={'content': 'x'})
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()['code'], 'MISSING_EXPORTER')

    def test_export_requires_content(self):
        self.assertEqual(self.client.post('/api/export/md', json={}).status_code, 400)


if __name__ == '__main__':
    unittest.main()
