import logging
from collections import namedtuple

from capstone import *
from capstone.x86 import *

l = logging.getLogger("x86ropgadget.disassembler")

# architectural upper bound on the encoded length of one x86 instruction
MAX_INSTRUCTION_LEN = 15

Operand = namedtuple("Operand", ["type", "reg", "imm", "access"])

class Instruction():
    """
    A decoded instruction, detached from the capstone handle that produced it.

    Two instructions compare equal when their encodings are identical, wherever
    they were decoded from.
    """

    __slots__ = ("address", "bytes", "mnemonic", "op_str", "id", "groups", "operands")

    def __init__(self, address, data, mnemonic, op_str, id=X86_INS_INVALID, groups=(), operands=()):
        self.address = address
        self.bytes = bytes(data)
        self.mnemonic = mnemonic
        self.op_str = op_str
        self.id = id
        self.groups = tuple(groups)
        self.operands = tuple(operands)

    @classmethod
    def from_capstone(cls, insn):
        operands = []
        for op in insn.operands:
            reg = insn.reg_name(op.reg) if op.type == X86_OP_REG else None
            imm = op.imm if op.type == X86_OP_IMM else None
            operands.append(Operand(op.type, reg, imm, op.access))

        return cls(insn.address, insn.bytes, insn.mnemonic, insn.op_str,
                   insn.id, insn.groups, operands)

    @classmethod
    def invalid(cls, address, data):
        return cls(address, data[:1], "(bad)", "")

    @property
    def size(self):
        return len(self.bytes)

    @property
    def is_invalid(self):
        return self.id == X86_INS_INVALID

    def __len__(self):
        return self.size

    def __eq__(self, other):
        if not isinstance(other, Instruction):
            return NotImplemented
        return self.bytes == other.bytes

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash(self.bytes)

    def __repr__(self):
        return f"<Instruction {self.address:#x}: {self.mnemonic} {self.op_str}>"

class Disassembler():
    def __init__(self, mode):
        self.__md = Cs(CS_ARCH_X86, mode)
        self.__md.detail = True

    def decode(self, code, address):
        # a decode failure becomes an invalid record instead of an exception
        for insn in self.__md.disasm(bytes(code[:MAX_INSTRUCTION_LEN]), address, 1):
            return Instruction.from_capstone(insn)
        return Instruction.invalid(address, code)

    def decode_all(self, code, address):
        """Decode the section once per byte offset."""
        l.debug("decoding %d byte offsets at %#x", len(code), address)
        view = memoryview(code)
        return [self.decode(view[offset:], address + offset) for offset in range(len(code))]
