from x86ropgadget.loaders.error import LoaderError
from x86ropgadget.loaders.elf import ELF
from x86ropgadget.loaders.raw import RawBinary
