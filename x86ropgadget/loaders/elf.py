import logging
from ctypes import *

from capstone import *

from x86ropgadget.loaders.error import LoaderError

l = logging.getLogger("x86ropgadget.loaders.elf")

class ELF_flags():
    EI_SIZE     = 0x10
    EI_MAG0     = 0x00
    EI_MAG1     = 0x04
    ELFCLASS32  = 0x01
    ELFCLASS64  = 0x02
    EI_CLASS    = 0x04
    EI_DATA     = 0x05

    ELFDATA2LSB = 0x01
    ELFDATA2MSB = 0x02

    EM_386    = 0x03
    EM_X86_64 = 0x3E

    PT_LOAD = 0x1
    PF_X    = 0x1

class Elf32_Ehdr(LittleEndianStructure):
    _fields_ =  [
                    ("e_ident",         c_ubyte * 16),
                    ("e_type",          c_ushort),
                    ("e_machine",       c_ushort),
                    ("e_version",       c_uint),
                    ("e_entry",         c_uint),
                    ("e_phoff",         c_uint),
                    ("e_shoff",         c_uint),
                    ("e_flags",         c_uint),
                    ("e_ehsize",        c_ushort),
                    ("e_phentsize",     c_ushort),
                    ("e_phnum",         c_ushort),
                    ("e_shentsize",     c_ushort),
                    ("e_shnum",         c_ushort),
                    ("e_shstrndx",      c_ushort),
                ]


class Elf64_Ehdr(LittleEndianStructure):
    _fields_ =  [
                    ("e_ident",         c_ubyte * 16),
                    ("e_type",          c_ushort),
                    ("e_machine",       c_ushort),
                    ("e_version",       c_uint),
                    ("e_entry",         c_ulonglong),
                    ("e_phoff",         c_ulonglong),
                    ("e_shoff",         c_ulonglong),
                    ("e_flags",         c_uint),
                    ("e_ehsize",        c_ushort),
                    ("e_phentsize",     c_ushort),
                    ("e_phnum",         c_ushort),
                    ("e_shentsize",     c_ushort),
                    ("e_shnum",         c_ushort),
                    ("e_shstrndx",      c_ushort),
                ]


class Elf32_Phdr(LittleEndianStructure):
    _fields_ =  [
                    ("p_type",          c_uint),
                    ("p_offset",        c_uint),
                    ("p_vaddr",         c_uint),
                    ("p_paddr",         c_uint),
                    ("p_filesz",        c_uint),
                    ("p_memsz",         c_uint),
                    ("p_flags",         c_uint),
                    ("p_align",         c_uint),
                ]


class Elf64_Phdr(LittleEndianStructure):
    _fields_ =  [
                    ("p_type",          c_uint),
                    ("p_flags",         c_uint),
                    ("p_offset",        c_ulonglong),
                    ("p_vaddr",         c_ulonglong),
                    ("p_paddr",         c_ulonglong),
                    ("p_filesz",        c_ulonglong),
                    ("p_memsz",         c_ulonglong),
                    ("p_align",         c_ulonglong),
                ]

class ELF():
    def __init__(self, filename):
        try:
            with open(filename, "rb") as fd:
                self.__binary = bytearray(fd.read())
        except OSError as e:
            raise LoaderError(f"can't open file {filename}: {e.strerror}")

        self.__parse_file_header()
        self.__parse_program_header()

    def __is_32bit(self):
        return self.__ehdr.e_ident[ELF_flags.EI_CLASS] == ELF_flags.ELFCLASS32

    def __parse_file_header(self):
        if len(self.__binary) < ELF_flags.EI_SIZE:
            raise LoaderError("file too small to be an ELF")

        e_ident = self.__binary[:ELF_flags.EI_SIZE]

        ei_head = e_ident[ELF_flags.EI_MAG0 : ELF_flags.EI_MAG1]
        ei_class = e_ident[ELF_flags.EI_CLASS]
        ei_data = e_ident[ELF_flags.EI_DATA]

        if ei_head != bytearray(b"\x7fELF"):
            raise LoaderError("only ELF format is supported")

        if ei_class != ELF_flags.ELFCLASS32 and ei_class != ELF_flags.ELFCLASS64:
            raise LoaderError("architecture size corrupted")

        if ei_data != ELF_flags.ELFDATA2LSB:
            raise LoaderError("bad endianness")

        ehdr_type = Elf32_Ehdr if ei_class == ELF_flags.ELFCLASS32 else Elf64_Ehdr
        if len(self.__binary) < sizeof(ehdr_type):
            raise LoaderError("ELF header truncated")

        self.__ehdr = ehdr_type.from_buffer_copy(self.__binary)

        if self.__ehdr.e_machine not in (ELF_flags.EM_386, ELF_flags.EM_X86_64):
            raise LoaderError("only x86 and x86-64 architectures supported")

    def __parse_program_header(self):
        phdr_type = Elf32_Phdr if self.__is_32bit() else Elf64_Phdr

        self.__phdr_l = []

        for i in range(self.__ehdr.e_phnum):
            offset = self.__ehdr.e_phoff + i * self.__ehdr.e_phentsize
            if offset + sizeof(phdr_type) > len(self.__binary):
                raise LoaderError("program header table truncated")

            self.__phdr_l.append(phdr_type.from_buffer_copy(self.__binary, offset))

        l.debug("parsed %d program headers", len(self.__phdr_l))

    def get_arch_mode(self):
        if self.__ehdr.e_machine == ELF_flags.EM_386:
            return CS_MODE_32
        return CS_MODE_64

    def get_exec_sections(self):
        return [{
                    "name":  f"segment {index}",
                    "vaddr": segment.p_vaddr,
                    "code":  bytes(self.__binary[segment.p_offset : segment.p_offset + segment.p_filesz]),
                }
                for index, segment in enumerate(self.__phdr_l)
                if segment.p_type == ELF_flags.PT_LOAD and segment.p_flags & ELF_flags.PF_X]
