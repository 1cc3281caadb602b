from x86ropgadget.formatter import FormatterTextKind, StringOutput, gadget_formatter
from x86ropgadget.rules import DEFAULT_RULES

class Gadget():
    """
    An instruction sequence ending in a tail instruction, found at file_offset.

    Gadgets are equal and hash alike when their instructions are identical, so a
    set or dict keyed by gadgets drops duplicates found at other addresses.
    Sorting orders them by address only.
    """

    __slots__ = ("__file_offset", "__instructions")

    def __init__(self, file_offset, instructions):
        self.__file_offset = file_offset
        self.__instructions = tuple(instructions)

    @property
    def file_offset(self):
        return self.__file_offset

    @property
    def instructions(self):
        return self.__instructions

    def __len__(self):
        return len(self.__instructions)

    def __eq__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__instructions == other.__instructions

    def __ne__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__instructions != other.__instructions

    def __hash__(self):
        return hash(self.__instructions)

    def __lt__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__file_offset < other.__file_offset

    def __le__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__file_offset <= other.__file_offset

    def __gt__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__file_offset > other.__file_offset

    def __ge__(self, other):
        if not isinstance(other, Gadget):
            return NotImplemented
        return self.__file_offset >= other.__file_offset

    def is_stack_pivot(self, rules=DEFAULT_RULES):
        if not self.__instructions:
            return False
        if len(self.__instructions) == 1:
            return rules.is_stack_pivot_tail(self.__instructions[0])
        return any(rules.is_stack_pivot_head(i) for i in self.__instructions[:-1])

    def is_base_pivot(self, rules=DEFAULT_RULES):
        if len(self.__instructions) <= 1:
            return False
        return any(rules.is_base_pivot_head(i) for i in self.__instructions[:-1])

    def format_instruction(self, output, formatter=None):
        if formatter is None:
            formatter = gadget_formatter()

        last = len(self.__instructions) - 1
        for index, instruction in enumerate(self.__instructions):
            formatter.format(instruction, output)
            output.write(";", FormatterTextKind.TEXT)
            if index < last:
                output.write(" ", FormatterTextKind.TEXT)

    def format_full(self, output, formatter=None):
        output.write(f"{self.__file_offset:#010x}: ", FormatterTextKind.FUNCTION)
        self.format_instruction(output, formatter)

    def __str__(self):
        output = StringOutput()
        self.format_full(output)
        return output.getvalue()

    def __repr__(self):
        return f"<Gadget {self.__file_offset:#x} ({len(self.__instructions)} instructions)>"

class GadgetIterator():
    """
    Lazily yields every gadget that ends exactly at tail_instruction.

    predecessors[i] is the instruction decoded when starting at byte i of the
    window that precedes the tail, and start_index is the offset of that window
    from section_start. Every start offset is tried once, lowest first; the
    iterator is exhausted once the window is consumed.
    """

    def __init__(self, section_start, tail_instruction, predecessors, max_instructions,
                 noisy=False, start_index=0, rules=DEFAULT_RULES):
        if max_instructions < 1:
            raise ValueError(f"max_instructions must leave room for the tail, got {max_instructions}")

        self.__section_start = section_start
        self.__tail_instruction = tail_instruction
        self.__predecessors = predecessors
        self.__front = 0
        self.__max_instructions = max_instructions
        self.__noisy = noisy
        self.__start_index = start_index
        self.__rules = rules

    @property
    def remaining(self):
        """Number of start offsets not yet tried."""
        return len(self.__predecessors) - self.__front

    @property
    def start_index(self):
        return self.__start_index

    def __iter__(self):
        return self

    def __next__(self):
        while self.remaining > 0:
            instructions = []
            length = self.remaining
            index = 0

            while index < length and len(instructions) < self.__max_instructions - 1:
                instruction = self.__predecessors[self.__front + index]
                if not self.__rules.is_rop_gadget_head(instruction, self.__noisy):
                    # index < length here, so this start offset yields nothing
                    break
                instructions.append(instruction)
                index += instruction.size

            current_start_index = self.__start_index

            self.__front += 1
            self.__start_index += 1

            if index == length:
                instructions.append(self.__tail_instruction)
                return Gadget(self.__section_start + current_start_index, instructions)

        raise StopIteration
