#!/usr/bin/env python3
"""
Sales agent tests: final answers, tool round trips and the hop limit.
"""

import json
import unittest

from salesbot.agents.sales_agent import (
    HOPS_EXHAUSTED,
    INVALID_CALL,
    NO_RESPONSE,
    SalesAgent,
    parse_tool_arguments,
)
from salesbot.tools.types import ToolContext

from support import LoopingLLM, ScriptedLLM, make_chat, make_db, seed_bot, tool_call


class TestParseToolArguments(unittest.TestCase):
    def test_parses_objects_only(self):
        self.assertEqual(parse_tool_arguments('{"sku": "ABC-1"}'), {"sku": "ABC-1"})
        self.assertEqual(parse_tool_arguments({"qty": 2}), {"qty": 2})
        self.assertEqual(parse_tool_arguments("{not json"), {})
        self.assertEqual(parse_tool_arguments("[1, 2]"), {})
        self.assertEqual(parse_tool_arguments(None), {})


class TestSalesAgent(unittest.TestCase):
    def setUp(self):
        self.engine, self.db = make_db()
        self.bot = seed_bot(self.db)
        self.chat = make_chat(self.db, self.bot)
        self.ctx = ToolContext(self.db, self.bot.id, self.chat.id)

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def agent(self, llm, **kwargs):
        return SalesAgent(llm, self.ctx, bot_name="Tienda Test", **kwargs)

    def test_final_answer_without_tools(self):
        llm = ScriptedLLM([{"role": "assistant", "content": "¡Hola! ¿En qué te ayudo?"}])
        history = [{"role": "user", "content": "buenas"}, {"role": "assistant", "content": "Hola"}]
        result = self.agent(llm).run_turn("hola", history)

        self.assertEqual(result.content, "¡Hola! ¿En qué te ayudo?")
        sent = llm.calls[0]["messages"]
        self.assertEqual(sent[0]["role"], "system")
        self.assertIn("Tienda Test", sent[0]["content"])
        self.assertEqual([m["content"] for m in sent[1:]], ["buenas", "Hola", "hola"])
        self.assertEqual(llm.calls[0]["tool_choice"], "auto")
        self.assertEqual(len(llm.calls[0]["tools"]), 13)

    def test_tool_round_trip(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None,
             "tool_calls": [tool_call("call_1", "check_stock", {"sku": "GOR-7", "qty": 2})]},
            {"role": "assistant", "content": "Sí, tengo 10 gorras negras."},
        ])
        result = self.agent(llm).run_turn("¿tienes la GOR-7?")

        self.assertEqual(result.content, "Sí, tengo 10 gorras negras.")
        second = llm.calls[1]["messages"]
        assistant, tool = second[-2], second[-1]
        self.assertEqual(assistant["role"], "assistant")
        self.assertEqual(assistant["tool_calls"][0]["id"], "call_1")
        self.assertEqual(tool["role"], "tool")
        self.assertEqual(tool["tool_call_id"], "call_1")
        self.assertEqual(json.loads(tool["content"])["available"], 10)

    def test_every_call_in_a_turn_gets_a_result(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": "",
             "tool_calls": [
                 tool_call("a", "get_payment_methods", {}),
                 tool_call("b", "get_shipping_methods", "{}"),
             ]},
            {"role": "assistant", "content": "Listo"},
        ])
        self.agent(llm).run_turn("¿cómo pago?")
        tools = [m for m in llm.calls[1]["messages"] if m["role"] == "tool"]
        self.assertEqual([m["tool_call_id"] for m in tools], ["a", "b"])

    def test_malformed_arguments_become_empty(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None, "tool_calls": [tool_call("c1", "cart_get", "{oops")]},
            {"role": "assistant", "content": "Tu carrito está vacío."},
        ])
        result = self.agent(llm).run_turn("mi carrito")
        tool = llm.calls[1]["messages"][-1]
        self.assertTrue(json.loads(tool["content"])["ok"])
        self.assertEqual(result.content, "Tu carrito está vacío.")

    def test_invalid_arguments_reach_the_model(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None, "tool_calls": [tool_call("c1", "check_stock", {"qty": 1})]},
            {"role": "assistant", "content": "¿Qué SKU buscas?"},
        ])
        self.agent(llm).run_turn("stock")
        payload = json.loads(llm.calls[1]["messages"][-1]["content"])
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["error"], "Argumentos inválidos para la herramienta")

    def test_unknown_tool_is_reported(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None, "tool_calls": [tool_call("c1", "refund_all", {})]},
            {"role": "assistant", "content": "No puedo hacer eso."},
        ])
        self.agent(llm).run_turn("devuélveme todo")
        payload = json.loads(llm.calls[1]["messages"][-1]["content"])
        self.assertEqual(payload, {"ok": False, "error": "Tool no registrada: refund_all"})

    def test_calls_without_id_are_skipped(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None,
             "tool_calls": [{"type": "function", "function": {"name": "cart_get", "arguments": "{}"}}]},
            {"role": "assistant", "content": "ok"},
        ])
        self.agent(llm).run_turn("carrito")
        self.assertFalse([m for m in llm.calls[1]["messages"] if m["role"] == "tool"])

    def test_invalid_calls_with_id_get_an_error_result(self):
        llm = ScriptedLLM([
            {"role": "assistant", "content": None,
             "tool_calls": [
                 {"id": "no_name", "type": "function", "function": {"arguments": "{}"}},
                 {"id": "not_fn", "type": "retrieval", "function": {"name": "cart_get", "arguments": "{}"}},
                 tool_call("good", "cart_get", {}),
             ]},
            {"role": "assistant", "content": "ok"},
        ])
        self.agent(llm).run_turn("carrito")
        tools = [m for m in llm.calls[1]["messages"] if m["role"] == "tool"]
        self.assertEqual([m["tool_call_id"] for m in tools], ["no_name", "not_fn", "good"])
        for m in tools[:2]:
            self.assertEqual(json.loads(m["content"]), {"ok": False, "error": INVALID_CALL})
        self.assertTrue(json.loads(tools[2]["content"])["ok"])

    def test_stops_after_hop_limit(self):
        llm = LoopingLLM()
        result = self.agent(llm, max_tool_hops=3).run_turn("haz algo")
        self.assertEqual(result.content, HOPS_EXHAUSTED)
        self.assertEqual(llm.calls, 3)
        self.assertEqual(len([m for m in result.messages if m["role"] == "tool"]), 3)

    def test_no_message_from_model(self):
        result = self.agent(ScriptedLLM([])).run_turn("hola")
        self.assertEqual(result.content, NO_RESPONSE)


if __name__ == "__main__":
    unittest.main()
