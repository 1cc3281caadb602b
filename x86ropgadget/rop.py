import logging
import re

from x86ropgadget.disassembler import MAX_INSTRUCTION_LEN, Disassembler
from x86ropgadget.formatter import ColourOutput, StringOutput
from x86ropgadget.gadgets import Gadget, GadgetIterator
from x86ropgadget.rules import DEFAULT_RULES

l = logging.getLogger("x86ropgadget.rop")

class GadgetsCollection():
    def __init__(self, disassembler, max_instructions, noisy=False,
                 rop=True, sys=True, jop=True, uniq=True, rules=DEFAULT_RULES):
        if max_instructions < 1:
            raise ValueError(f"max_instructions must be at least 1, got {max_instructions}")

        self.__disassembler = disassembler
        self.__max_instructions = max_instructions
        self.__noisy = noisy
        self.__rop = rop
        self.__sys = sys
        self.__jop = jop
        self.__uniq = uniq
        self.__rules = rules

        # key   -> gadget
        # value -> the same gadget found at the lowest address
        self.__gadgets = dict()
        self.__duplicates = []

    def __add(self, gadget):
        if not self.__uniq:
            self.__duplicates.append(gadget)
            return

        known = self.__gadgets.get(gadget)
        if known is None or gadget < known:
            self.__gadgets[gadget] = gadget

    def __is_tail(self, instruction):
        return self.__rules.is_gadget_tail(instruction, rop=self.__rop, sys=self.__sys,
                                           jop=self.__jop, noisy=self.__noisy)

    def find_gadgets_in_section(self, vaddr, code):
        predecessors = self.__disassembler.decode_all(code, vaddr)
        lookback = (self.__max_instructions - 1) * MAX_INSTRUCTION_LEN
        tails = 0

        for tail_index, tail in enumerate(predecessors):
            if not self.__is_tail(tail):
                continue
            tails += 1

            self.__add(Gadget(vaddr + tail_index, [tail]))

            start = max(0, tail_index - lookback)
            for gadget in GadgetIterator(vaddr, tail, predecessors[start:tail_index],
                                         self.__max_instructions, self.__noisy, start,
                                         self.__rules):
                self.__add(gadget)

        l.debug("%d tail instructions in section at %#x", tails, vaddr)

    def find_gadgets(self, exec_sections):
        for section in exec_sections:
            l.debug("searching %s (%#x, %d bytes)", section.get("name", "section"),
                    section["vaddr"], len(section["code"]))
            self.find_gadgets_in_section(section["vaddr"], section["code"])

    def get_gadgets(self):
        if not self.__uniq:
            return list(self.__duplicates)
        return list(self.__gadgets.values())

    def get_size(self):
        if not self.__uniq:
            return len(self.__duplicates)
        return len(self.__gadgets)

class ROP():
    DEFAULT_MAX_INSTRUCTIONS = 6

    def __init__(self, binary, options):
        self.__binary = binary
        self.__options = options
        self.__regex = re.compile(options.regex) if options.regex else None

        self.__collection = GadgetsCollection(
            Disassembler(self.__binary.get_arch_mode()),
            max_instructions = options.max_instr,
            noisy            = options.noisy,
            rop              = not options.norop,
            sys              = not options.nosys,
            jop              = not options.nojop,
            uniq             = not options.nouniq,
        )

    def __keep(self, gadget):
        if self.__options.stack_pivot and not gadget.is_stack_pivot():
            return False

        if self.__options.base_pivot and not gadget.is_base_pivot():
            return False

        if self.__options.range is not None:
            start, end = self.__options.range
            if not start <= gadget.file_offset <= end:
                return False

        if self.__regex is not None:
            text = StringOutput()
            gadget.format_instruction(text)
            if self.__regex.search(text.getvalue()) is None:
                return False

        return True

    def find_gadgets(self):
        l.info("Searching for gadgets ...")

        self.__collection.find_gadgets(self.__binary.get_exec_sections())
        gadgets = sorted(g for g in self.__collection.get_gadgets() if self.__keep(g))

        l.info("%d of %d gadgets kept after filtering", len(gadgets), self.__collection.get_size())
        return gadgets

    def __render(self, gadget, colour):
        output = ColourOutput() if colour else StringOutput()
        gadget.format_full(output)
        return output.getvalue()

    def print_gadgets(self, gadgets, output_filename=None):
        if output_filename is None:
            for gadget in gadgets:
                print(self.__render(gadget, self.__options.colour))
            return

        with open(output_filename, "w") as fout:
            fout.write(f"A total of {len(gadgets)} gadgets were found \n\n")
            for gadget in gadgets:
                fout.write(f"{self.__render(gadget, False)}\n")

    def list_gadgets(self):
        gadgets = self.find_gadgets()
        self.print_gadgets(gadgets, self.__options.output)

        print(f"{len(gadgets)} gadgets found")
        if self.__options.output is not None:
            print(f"Results are available at {self.__options.output}")

        return gadgets
