#!/usr/bin/env python3
import os
import sys
import tempfile
import threading
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from dingtalk_proxy.config import ProfileStore, ProfileTable, load, load_file
from dingtalk_proxy.errors import ConfigError, ProfileNotFoundError


VALID = """
profiles:
  ops: https://oapi.dingtalk.com/robot/send?access_token=ops
  "  dev  ": "  https://oapi.dingtalk.com/robot/send?access_token=dev  "
"""


def _write_config(content):
    fd, path = tempfile.mkstemp(suffix='.yml')
    with os.fdopen(fd, 'w', encoding='utf-8') as fp:
        fp.write(content)
    return path


class TestLoad(unittest.TestCase):
    def test_profiles_round_trip_through_lookup(self):
        table = load(VALID)
        self.assertEqual(len(table), 2)
        self.assertEqual(table.lookup('ops'), 'https://oapi.dingtalk.com/robot/send?access_token=ops')
        # nome e URL são normalizados com strip
        self.assertEqual(table.lookup('dev'), 'https://oapi.dingtalk.com/robot/send?access_token=dev')

    def test_lookup_unknown_profile(self):
        table = load(VALID)
        with self.assertRaises(ProfileNotFoundError) as ctx:
            table.lookup('missing')
        self.assertEqual(ctx.exception.profile, 'missing')

    def test_rejects_zero_profiles(self):
        for raw in ("", "profiles:\n", "profiles: {}\n", "other: 1\n"):
            with self.assertRaises(ConfigError, msg=f"documento deveria ser rejeitado: {raw!r}"):
                load(raw)

    def test_rejects_empty_name(self):
        with self.assertRaises(ConfigError):
            load('profiles:\n  "  ": https://example.com/hook\n')

    def test_rejects_empty_url(self):
        for raw in ('profiles:\n  ops: "   "\n', 'profiles:\n  ops:\n'):
            with self.assertRaises(ConfigError):
                load(raw)

    def test_rejects_whole_document_when_one_entry_is_bad(self):
        raw = "profiles:\n  ops: https://example.com/ok\n  dev: ''\n"
        with self.assertRaises(ConfigError):
            load(raw)

    def test_rejects_invalid_url(self):
        with self.assertRaises(ConfigError):
            load("profiles:\n  ops: not-a-url\n")
        with self.assertRaises(ConfigError):
            load("profiles:\n  ops: ftp://example.com/hook\n")

    def test_rejects_non_mapping_documents(self):
        for raw in ("- a\n- b\n", "profiles:\n  - ops\n", "profiles:\n  ops: [1, 2]\n"):
            with self.assertRaises(ConfigError):
                load(raw)

    def test_rejects_invalid_yaml(self):
        with self.assertRaises(ConfigError):
            load("profiles: {ops: \n")

    def test_rejects_duplicated_names_after_trim(self):
        raw = 'profiles:\n  ops: https://example.com/a\n  " ops": https://example.com/b\n'
        with self.assertRaises(ConfigError):
            load(raw)

    def test_load_file_missing(self):
        with self.assertRaises(ConfigError):
            load_file('/nonexistent/dingtalk.yml')

    def test_load_file_not_utf8(self):
        fd, path = tempfile.mkstemp(suffix='.yml')
        with os.fdopen(fd, 'wb') as fp:
            fp.write("profiles:\n  operação: https://example.com/hook\n".encode('latin-1'))
        try:
            with self.assertRaises(ConfigError) as ctx:
                load_file(path)
            self.assertIn('cannot read config file', str(ctx.exception))
        finally:
            os.unlink(path)


class TestProfileStore(unittest.TestCase):
    def setUp(self):
        self.path = _write_config(VALID)
        self.store = ProfileStore(load_file(self.path), config_file=self.path)

    def tearDown(self):
        os.unlink(self.path)

    def test_reload_success_replaces_table(self):
        with open(self.path, 'w', encoding='utf-8') as fp:
            fp.write("profiles:\n  ops: https://example.com/new\n")
        self.store.reload()
        self.assertEqual(self.store.lookup('ops'), 'https://example.com/new')
        with self.assertRaises(ProfileNotFoundError):
            self.store.lookup('dev')

    def test_failed_reload_keeps_previous_table(self):
        before = self.store.snapshot()
        with open(self.path, 'w', encoding='utf-8') as fp:
            fp.write("profiles:\n  ops: https://example.com/new\n  dev: ''\n")
        with self.assertRaises(ConfigError):
            self.store.reload()
        self.assertIs(self.store.snapshot(), before, "reload inválido não pode alterar a tabela ativa")
        self.assertEqual(self.store.lookup('dev'), 'https://oapi.dingtalk.com/robot/send?access_token=dev')

    def test_reload_without_file_is_logged(self):
        store = ProfileStore(ProfileTable({'ops': 'https://example.com/ops'}))
        with self.assertLogs('dingtalk_proxy.config', level='ERROR') as logs:
            with self.assertRaises(ConfigError):
                store.reload()
        self.assertIn('sem arquivo de configuração', logs.output[0])
        self.assertEqual(store.lookup('ops'), 'https://example.com/ops')

    def test_replace_requires_profile_table(self):
        with self.assertRaises(TypeError):
            self.store.replace({'ops': 'https://example.com'})

    def test_snapshot_is_stable_across_replace(self):
        snapshot = self.store.snapshot()
        self.store.replace(ProfileTable({'other': 'https://example.com/other'}))
        self.assertEqual(snapshot.lookup('ops'), 'https://oapi.dingtalk.com/robot/send?access_token=ops')
        with self.assertRaises(ProfileNotFoundError):
            self.store.lookup('ops')

    def test_concurrent_lookups_never_see_mixed_tables(self):
        old = ProfileTable({'a': 'https://example.com/a1', 'b': 'https://example.com/b1'})
        new = ProfileTable({'a': 'https://example.com/a2', 'b': 'https://example.com/b2'})
        store = ProfileStore(old)
        stop = threading.Event()
        mixed = []

        def writer():
            flip = False
            while not stop.is_set():
                store.replace(new if flip else old)
                flip = not flip

        def reader():
            for _ in range(2000):
                snap = store.snapshot()
                pair = (snap.lookup('a')[-1], snap.lookup('b')[-1])
                if pair not in (('1', '1'), ('2', '2')):
                    mixed.append(pair)

        w = threading.Thread(target=writer)
        readers = [threading.Thread(target=reader) for _ in range(4)]
        w.start()
        for r in readers:
            r.start()
        for r in readers:
            r.join()
        stop.set()
        w.join()
        self.assertEqual(mixed, [], "leitura concorrente viu tabela parcialmente substituída")


if __name__ == '__main__':
    unittest.main()
