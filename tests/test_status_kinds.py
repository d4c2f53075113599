import unittest
from types import SimpleNamespace

from mktops.services.status_kinds import infer_status_kind, is_delivered, is_production, status_kind


class InferStatusKindTests(unittest.TestCase):
    def test_known_names(self):
        cases = {
            "Em Produção": "production",
            "producao": "production",
            "Revisão": "review",
            "Alteração solicitada": "review",
            "Parado": "review",
            "Concluído": "completed",
            "Entregue": "completed",
            "Ap. Gerente": "approval",
            "Aprovado": "approval",
            "Para postar": "approval",
            "Agendado": "approval",
            "Backlog": "backlog",
            "Fila": "backlog",
            "Briefing": "custom",
            "": "custom",
        }
        for name, expected in cases.items():
            with self.subTest(name=name):
                self.assertEqual(infer_status_kind(name), expected)

    def test_ap_needs_whole_word(self):
        self.assertEqual(infer_status_kind("AP cliente"), "approval")
        self.assertEqual(infer_status_kind("Mapa mental"), "custom")


class StatusKindTests(unittest.TestCase):
    def test_stored_kind_wins(self):
        status = SimpleNamespace(name="Em Produção", kind="backlog")
        self.assertEqual(status_kind(status), "backlog")
        self.assertFalse(is_production(status))

    def test_missing_kind_falls_back_to_name(self):
        self.assertTrue(is_production({"name": "Em produção", "kind": None}))
        self.assertTrue(is_delivered(SimpleNamespace(name="Concluído", kind=None)))

    def test_none_is_custom(self):
        self.assertEqual(status_kind(None), "custom")
        self.assertFalse(is_delivered(None))
