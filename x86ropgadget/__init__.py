import argparse
import logging
import re

from capstone import CS_MODE_32, CS_MODE_64

import x86ropgadget.loaders

l = logging.getLogger("x86ropgadget")

def parse_address(text):
    try:
        return int(text, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid address: {text!r}")

def parse_range(text):
    start, sep, end = text.partition("-")
    if not sep:
        raise argparse.ArgumentTypeError(f"range must look like START-END, got {text!r}")

    start, end = parse_address(start), parse_address(end)
    if start > end:
        raise argparse.ArgumentTypeError(f"range start {start:#x} is after its end {end:#x}")
    return start, end

def build_parser():
    from x86ropgadget.rop import ROP

    parser = argparse.ArgumentParser(description="Find ROP, syscall and JOP gadgets in x86 executables")

    parser.add_argument(dest="binary", help="path to binary")
    parser.add_argument("--raw", choices=("32", "64"), help="treat the file as raw machine code of the given bitness")
    parser.add_argument("--base", type=parse_address, default=0, help="load address of a raw file")

    parser.add_argument("-m", "--max-instr", type=int, default=ROP.DEFAULT_MAX_INSTRUCTIONS,
                        help="maximum number of instructions in a gadget, tail included")
    parser.add_argument("-n", "--noisy", action="store_true", help="accept unreliable instructions in gadgets")
    parser.add_argument("--norop", action="store_true", help="skip gadgets ending in a return")
    parser.add_argument("--nosys", action="store_true", help="skip gadgets ending in a system call")
    parser.add_argument("--nojop", action="store_true", help="skip gadgets ending in an indirect jump or call")
    parser.add_argument("--nouniq", action="store_true", help="list every occurrence of duplicate gadgets")

    parser.add_argument("-s", "--stack-pivot", action="store_true", help="only list stack pivots")
    parser.add_argument("-b", "--base-pivot", action="store_true", help="only list base pointer pivots")
    parser.add_argument("-r", "--regex", help="only list gadgets whose text matches this regex")
    parser.add_argument("-R", "--range", type=parse_range, help="only list gadgets with addresses in START-END")

    parser.add_argument("-c", "--colour", action="store_true", help="colour the output")
    parser.add_argument("-o", "--output", help="write the gadgets to this file")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="increase logging verbosity")

    return parser

def load_binary(args):
    if args.raw is not None:
        mode = CS_MODE_32 if args.raw == "32" else CS_MODE_64
        return x86ropgadget.loaders.RawBinary(args.binary, mode, args.base)
    return x86ropgadget.loaders.ELF(args.binary)

def main(argv=None):
    from x86ropgadget.rop import ROP

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.max_instr < 1:
        parser.error("--max-instr must be at least 1")

    if args.regex is not None:
        try:
            re.compile(args.regex)
        except re.error as e:
            parser.error(f"invalid regex: {e}")

    logging.basicConfig(format="[%(levelname)s] %(message)s",
                        level=logging.DEBUG if args.verbose > 1 else logging.INFO if args.verbose else logging.WARNING)

    try:
        binary = load_binary(args)
    except x86ropgadget.loaders.LoaderError as e:
        l.error("%s", e)
        return 1

    rop = ROP(binary, args)
    rop.list_gadgets()
    return 0
