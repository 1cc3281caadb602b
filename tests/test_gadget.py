import unittest

from capstone import CS_MODE_64

from x86ropgadget.disassembler import Disassembler
from x86ropgadget.formatter import FormatterTextKind
from x86ropgadget.gadgets import Gadget

from tests.fakes import FakeFormatter, FakeInstruction, FakeRules, RecordingOutput

class GadgetTests(unittest.TestCase):

    def setUp(self):
        self.rules = FakeRules()
        self.tail = FakeInstruction("ret", 1)
        self.pop = FakeInstruction("pop", 1)
        self.xchg = FakeInstruction("xchg", 2, stack_pivot_head=True)
        self.leave = FakeInstruction("leave", 1, base_pivot_head=True)

    def test_equality_ignores_offset(self):
        first = Gadget(0x1000, [self.pop, self.tail])
        second = Gadget(0x2000, [self.pop, self.tail])

        self.assertEqual(first, second)
        self.assertFalse(first != second)
        self.assertEqual(hash(first), hash(second))
        self.assertEqual(len({first, second}), 1)

    def test_different_instructions_differ(self):
        first = Gadget(0x1000, [self.pop, self.tail])
        second = Gadget(0x1000, [self.xchg, self.tail])

        self.assertNotEqual(first, second)
        self.assertEqual(len({first, second}), 2)

    def test_ordering_by_offset_only(self):
        gadgets = [
            Gadget(0x30, [self.pop, self.tail]),
            Gadget(0x10, [self.xchg, self.pop, self.tail]),
            Gadget(0x20, [self.tail]),
        ]

        self.assertEqual([g.file_offset for g in sorted(gadgets)], [0x10, 0x20, 0x30])
        self.assertTrue(gadgets[1] < gadgets[0])
        self.assertTrue(gadgets[0] >= gadgets[2])
        self.assertTrue(gadgets[2] <= gadgets[0])
        self.assertTrue(gadgets[0] > gadgets[1])

    def test_instructions_are_immutable(self):
        body = [self.pop, self.tail]
        gadget = Gadget(0x1000, body)
        body.append(self.xchg)

        self.assertEqual(gadget.instructions, (self.pop, self.tail))
        with self.assertRaises(AttributeError):
            gadget.file_offset = 0

    def test_stack_pivot_tail_only(self):
        ret_imm = FakeInstruction("ret 8", 3, stack_pivot_tail=True)

        self.assertTrue(Gadget(0, [ret_imm]).is_stack_pivot(self.rules))
        self.assertFalse(Gadget(0, [self.tail]).is_stack_pivot(self.rules))

    def test_stack_pivot_head(self):
        self.assertTrue(Gadget(0, [self.pop, self.xchg, self.tail]).is_stack_pivot(self.rules))
        self.assertFalse(Gadget(0, [self.pop, self.tail]).is_stack_pivot(self.rules))

    def test_tail_not_rechecked_after_head(self):
        ret_imm = FakeInstruction("ret 8", 3, stack_pivot_tail=True, stack_pivot_head=True)

        self.assertFalse(Gadget(0, [self.pop, ret_imm]).is_stack_pivot(self.rules))

    def test_empty_gadget_is_not_a_pivot(self):
        self.assertFalse(Gadget(0, []).is_stack_pivot(self.rules))
        self.assertFalse(Gadget(0, []).is_base_pivot(self.rules))

    def test_base_pivot(self):
        self.assertTrue(Gadget(0, [self.leave, self.tail]).is_base_pivot(self.rules))
        self.assertFalse(Gadget(0, [self.pop, self.tail]).is_base_pivot(self.rules))

        leave_tail = FakeInstruction("leave", 1, base_pivot_head=True)
        self.assertFalse(Gadget(0, [leave_tail]).is_base_pivot(self.rules))

    def test_pivot_queries_are_repeatable(self):
        gadget = Gadget(0, [self.xchg, self.leave, self.tail])

        self.assertEqual(gadget.is_stack_pivot(self.rules), gadget.is_stack_pivot(self.rules))
        self.assertEqual(gadget.is_base_pivot(self.rules), gadget.is_base_pivot(self.rules))
        self.assertTrue(gadget.is_base_pivot(self.rules))

    def test_format_instruction(self):
        output = RecordingOutput()
        Gadget(0x1000, [self.pop, self.xchg, self.tail]).format_instruction(output, FakeFormatter())

        self.assertEqual(output.text(), "pop; xchg; ret;")

    def test_format_single_instruction(self):
        output = RecordingOutput()
        Gadget(0x1000, [self.tail]).format_instruction(output, FakeFormatter())

        self.assertEqual(output.text(), "ret;")

    def test_format_full(self):
        output = RecordingOutput()
        Gadget(0x401a2b, [self.pop, self.tail]).format_full(output, FakeFormatter())

        self.assertEqual(output.text(), "0x00401a2b: pop; ret;")
        self.assertEqual(output.tokens[0], ("0x00401a2b: ", FormatterTextKind.FUNCTION))

    def test_str_with_decoded_instructions(self):
        disassembler = Disassembler(CS_MODE_64)
        pop = disassembler.decode(b"\x5f", 0x401000)
        ret = disassembler.decode(b"\xc3", 0x401001)

        self.assertEqual(str(Gadget(0x401000, [pop, ret])), "0x00401000: pop rdi; ret;")

if __name__ == "__main__":
    unittest.main()
