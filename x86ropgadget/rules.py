from capstone import (CS_AC_WRITE, CS_GRP_CALL, CS_GRP_INT, CS_GRP_IRET, CS_GRP_JUMP,
                      CS_GRP_PRIVILEGE, CS_GRP_RET)
from capstone.x86 import (X86_INS_ADD, X86_INS_CALL, X86_INS_INT, X86_INS_JMP, X86_INS_LEAVE,
                          X86_INS_LJMP, X86_INS_RET, X86_INS_RETF, X86_INS_RETFQ, X86_INS_SUB,
                          X86_INS_SYSCALL, X86_INS_SYSENTER, X86_OP_IMM, X86_OP_MEM, X86_OP_REG)

class X86_CONSTANTS():
    STACK_POINTERS = frozenset(["rsp", "esp", "sp", "spl"])
    BASE_POINTERS  = frozenset(["rbp", "ebp", "bp", "bpl"])

    CONTROL_FLOW_GROUPS = frozenset([CS_GRP_JUMP, CS_GRP_CALL, CS_GRP_RET, CS_GRP_INT, CS_GRP_IRET])

    UNCONDITIONAL_JUMPS = frozenset([X86_INS_JMP, X86_INS_LJMP])
    FAR_RETURNS = frozenset([X86_INS_RETF, X86_INS_RETFQ])
    LOOPS = frozenset(["loop", "loope", "loopne", "jcxz", "jecxz", "jrcxz"])

    # never useful inside a gadget: they fault or trap unconditionally
    TRAPS = frozenset(["ud0", "ud1", "ud2", "int1", "int3", "into"])

    # return to another privilege level, never usable mid-gadget
    SYSTEM_RETURNS = frozenset([
        "sysexit", "sysexitl", "sysexitq", "sysret", "sysretl", "sysretq",
        "iret", "iretd", "iretq",
    ])

    # legal only in noisy mode: privileged, I/O or halting instructions that
    # almost never execute usefully from user mode
    NOISY = frozenset([
        "hlt", "cli", "sti", "clts", "invd", "wbinvd", "invlpg", "swapgs",
        "rdmsr", "wrmsr", "rdpmc", "lgdt", "lidt", "lldt", "ltr", "lmsw",
        "in", "insb", "insw", "insd", "out", "outsb", "outsw", "outsd",
        "vmcall", "vmlaunch", "vmresume", "vmxoff", "monitor", "mwait",
    ])

    SYSCALL_INTERRUPT = 0x80

class X86Rules():
    """
    Per-instruction predicates deciding what may appear in a gadget and what
    makes a gadget pivot the stack or frame pointer.
    """

    def __written_registers(self, instruction):
        return [op.reg for op in instruction.operands
                if op.type == X86_OP_REG and op.access & CS_AC_WRITE]

    def __has_immediate(self, instruction):
        return any(op.type == X86_OP_IMM for op in instruction.operands)

    def __opcode(self, instruction):
        # capstone folds prefixes into the mnemonic: "repz ret", "bnd jmp"
        return instruction.mnemonic.split()[-1] if instruction.mnemonic else ""

    def __is_control_flow(self, instruction):
        return any(group in X86_CONSTANTS.CONTROL_FLOW_GROUPS for group in instruction.groups)

    def __is_conditional_branch(self, instruction):
        if self.__opcode(instruction) in X86_CONSTANTS.LOOPS:
            return True
        return (CS_GRP_JUMP in instruction.groups
                and instruction.id not in X86_CONSTANTS.UNCONDITIONAL_JUMPS)

    def is_rop_gadget_head(self, instruction, noisy):
        opcode = self.__opcode(instruction)
        if instruction.is_invalid or opcode in X86_CONSTANTS.TRAPS or opcode in X86_CONSTANTS.SYSTEM_RETURNS:
            return False

        if self.is_sys(instruction):
            return False

        if self.__is_control_flow(instruction) or self.__is_conditional_branch(instruction):
            return noisy and self.__is_conditional_branch(instruction)

        if opcode in X86_CONSTANTS.NOISY or CS_GRP_PRIVILEGE in instruction.groups:
            return noisy

        return True

    def is_stack_pivot_head(self, instruction):
        if instruction.id == X86_INS_LEAVE:
            return True

        if not any(reg in X86_CONSTANTS.STACK_POINTERS for reg in self.__written_registers(instruction)):
            return False

        # add rsp, 0x18 only skips stack slots
        if instruction.id in (X86_INS_ADD, X86_INS_SUB) and self.__has_immediate(instruction):
            return False

        return True

    def is_stack_pivot_tail(self, instruction):
        return ((instruction.id == X86_INS_RET or instruction.id in X86_CONSTANTS.FAR_RETURNS)
                and self.__has_immediate(instruction))

    def is_base_pivot_head(self, instruction):
        if instruction.id == X86_INS_LEAVE:
            return True
        return any(reg in X86_CONSTANTS.BASE_POINTERS for reg in self.__written_registers(instruction))

    def is_ret(self, instruction, noisy=False):
        if instruction.id == X86_INS_RET:
            return True
        return noisy and instruction.id in X86_CONSTANTS.FAR_RETURNS

    def is_sys(self, instruction):
        if instruction.id in (X86_INS_SYSCALL, X86_INS_SYSENTER):
            return True
        return (instruction.id == X86_INS_INT
                and any(op.imm == X86_CONSTANTS.SYSCALL_INTERRUPT for op in instruction.operands))

    def is_jop(self, instruction, noisy=False):
        if instruction.id not in (X86_INS_JMP, X86_INS_CALL):
            return False

        for op in instruction.operands:
            if op.type == X86_OP_REG:
                return True
            if op.type == X86_OP_MEM:
                return noisy
        return False

    def is_gadget_tail(self, instruction, rop=True, sys=True, jop=True, noisy=False):
        if instruction.is_invalid:
            return False
        return ((rop and self.is_ret(instruction, noisy))
                or (sys and self.is_sys(instruction))
                or (jop and self.is_jop(instruction, noisy)))

DEFAULT_RULES = X86Rules()
