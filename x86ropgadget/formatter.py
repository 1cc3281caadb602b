import enum
import re

from capstone import CS_GRP_CALL, CS_GRP_JUMP
from capstone.x86 import X86_OP_IMM

class FormatterTextKind(enum.Enum):
    TEXT        = "text"
    MNEMONIC    = "mnemonic"
    KEYWORD     = "keyword"
    REGISTER    = "register"
    NUMBER      = "number"
    PUNCTUATION = "punctuation"
    FUNCTION    = "function"

class FormatterOutput():
    """Receives the tokens of a rendered instruction one at a time."""

    def write(self, text, kind):
        raise NotImplementedError

class StringOutput(FormatterOutput):
    def __init__(self):
        self._parts = []

    def write(self, text, kind):
        self._parts.append(text)

    def getvalue(self):
        return "".join(self._parts)

    def __str__(self):
        return self.getvalue()

class ColourOutput(StringOutput):
    RESET = "\033[0m"

    COLOURS = {
        FormatterTextKind.MNEMONIC:    "\033[0;33m",
        FormatterTextKind.REGISTER:    "\033[0;36m",
        FormatterTextKind.NUMBER:      "\033[0;32m",
        FormatterTextKind.KEYWORD:     "\033[0;37m",
        FormatterTextKind.FUNCTION:    "\033[0;31m",
    }

    def write(self, text, kind):
        colour = self.COLOURS.get(kind)
        if colour is None or not text:
            self._parts.append(text)
        else:
            self._parts.append(colour + text + self.RESET)

class FormatterOptions():
    def __init__(self):
        self.hex_prefix = "0x"
        self.hex_suffix = ""
        self.uppercase_hex = False
        self.branch_leading_zeroes = True
        self.space_after_operand_separator = True
        self.rip_relative_addresses = False

class IntelFormatter():
    """
    Renders capstone's Intel syntax text as categorized tokens, honouring the
    number and operand layout options.
    """

    KEYWORDS = frozenset([
        "byte", "word", "dword", "fword", "qword", "tbyte", "xword",
        "xmmword", "ymmword", "zmmword", "ptr",
    ])

    TOKEN_REG_EX = re.compile(r"(?P<number>0x[0-9a-fA-F]+|[0-9]+)|(?P<word>[a-z_][a-z0-9_]*)|(?P<other>\s+|.)")
    RIP_REG_EX = re.compile(r"\[rip(?: ([+-]) (0x[0-9a-fA-F]+|[0-9]+))?\]")

    def __init__(self):
        self.options = FormatterOptions()

    def __resolve_rip(self, instruction, op_str):
        next_ip = instruction.address + instruction.size

        def absolute(match):
            displacement = int(match.group(2), 0) if match.group(2) else 0
            if match.group(1) == "-":
                displacement = -displacement
            return f"[{(next_ip + displacement) & 0xffffffffffffffff:#x}]"

        return self.RIP_REG_EX.sub(absolute, op_str)

    def __is_branch(self, instruction):
        return CS_GRP_JUMP in instruction.groups or CS_GRP_CALL in instruction.groups

    def __format_number(self, text, pad):
        if not text.startswith("0x"):
            return text

        digits = text[2:]
        if pad:
            digits = digits.rjust(8 if int(digits, 16) <= 0xffffffff else 16, "0")
        if self.options.uppercase_hex:
            digits = digits.upper()
        else:
            digits = digits.lower()

        # a suffix-only hex number must not start with a letter
        if not self.options.hex_prefix and not digits[0].isdigit():
            digits = "0" + digits

        return self.options.hex_prefix + digits + self.options.hex_suffix

    def format(self, instruction, output):
        output.write(instruction.mnemonic, FormatterTextKind.MNEMONIC)

        op_str = instruction.op_str
        if not op_str:
            return

        if not self.options.rip_relative_addresses:
            op_str = self.__resolve_rip(instruction, op_str)

        output.write(" ", FormatterTextKind.TEXT)

        branch_target = (self.options.branch_leading_zeroes
                         and self.__is_branch(instruction)
                         and len(instruction.operands) == 1
                         and instruction.operands[0].type == X86_OP_IMM)
        separator = ", " if self.options.space_after_operand_separator else ","

        for index, operand in enumerate(op_str.split(", ")):
            if index > 0:
                output.write(separator, FormatterTextKind.PUNCTUATION)

            for match in self.TOKEN_REG_EX.finditer(operand):
                if match.group("number") is not None:
                    output.write(self.__format_number(match.group("number"), branch_target),
                                 FormatterTextKind.NUMBER)
                elif match.group("word") is not None:
                    word = match.group("word")
                    if word in self.KEYWORDS:
                        output.write(word, FormatterTextKind.KEYWORD)
                    else:
                        output.write(word, FormatterTextKind.REGISTER)
                elif match.group("other").isspace():
                    output.write(match.group("other"), FormatterTextKind.TEXT)
                else:
                    output.write(match.group("other"), FormatterTextKind.PUNCTUATION)

def gadget_formatter():
    """The formatter configuration every gadget listing is rendered with."""
    formatter = IntelFormatter()
    options = formatter.options
    options.hex_prefix = "0x"
    options.hex_suffix = ""
    options.space_after_operand_separator = True
    options.branch_leading_zeroes = False
    options.uppercase_hex = False
    options.rip_relative_addresses = True
    return formatter
