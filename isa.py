"""ISA: memory map, instruction word decoding and helpers."""

from __future__ import annotations

from enum import IntEnum
from typing import NamedTuple

MEM_SIZE = 4096
ADDR_MASK = 0x0FFF
PROGRAM_START = 0x200
FONT_BASE = 0x050
GLYPH_SIZE = 5
STACK_DEPTH = 16
NUM_REGISTERS = 16
NUM_KEYS = 16
SCREEN_WIDTH = 64
SCREEN_HEIGHT = 32
INSTR_SIZE = 2  # bytes per instruction word

# Hex digit sprites 0..F, 5 bytes each.
FONTSET = bytes(
    [
        0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
        0x20, 0x60, 0x20, 0x20, 0x70,  # 1
        0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
        0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
        0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
        0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
        0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
        0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
        0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
        0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
        0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
        0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
        0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
        0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
        0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
        0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
    ]
)  # fmt: skip


class OpCode(IntEnum):
    """Keeps all 35 instruction forms."""

    SYS = 0  # 0nnn
    CLS = 1  # 00E0
    RET = 2  # 00EE
    JP = 3  # 1nnn
    CALL = 4  # 2nnn
    SE_BYTE = 5  # 3xkk
    SNE_BYTE = 6  # 4xkk
    SE_REG = 7  # 5xy0
    LD_BYTE = 8  # 6xkk
    ADD_BYTE = 9  # 7xkk

    LD_REG = 10  # 8xy0
    OR = 11  # 8xy1
    AND = 12  # 8xy2
    XOR = 13  # 8xy3
    ADD_REG = 14  # 8xy4
    SUB = 15  # 8xy5
    SHR = 16  # 8xy6
    SUBN = 17  # 8xy7
    SHL = 18  # 8xyE

    SNE_REG = 20  # 9xy0
    LD_I = 21  # Annn
    JP_V0 = 22  # Bnnn
    RND = 23  # Cxkk
    DRW = 24  # Dxyn
    SKP = 25  # Ex9E
    SKNP = 26  # ExA1

    LD_VX_DT = 30  # Fx07
    LD_VX_K = 31  # Fx0A
    LD_DT_VX = 32  # Fx15
    LD_ST_VX = 33  # Fx18
    ADD_I_VX = 34  # Fx1E
    LD_F_VX = 35  # Fx29
    LD_B_VX = 36  # Fx33
    LD_MEM_VX = 37  # Fx55
    LD_VX_MEM = 38  # Fx65


class Fields(NamedTuple):
    """Fields of a decoded instruction word."""

    word: int
    group: int
    x: int
    y: int
    n: int
    kk: int
    nnn: int


_ALU_FORMS = {
    0x0: OpCode.LD_REG,
    0x1: OpCode.OR,
    0x2: OpCode.AND,
    0x3: OpCode.XOR,
    0x4: OpCode.ADD_REG,
    0x5: OpCode.SUB,
    0x6: OpCode.SHR,
    0x7: OpCode.SUBN,
    0xE: OpCode.SHL,
}

_KEY_FORMS = {
    0x9E: OpCode.SKP,
    0xA1: OpCode.SKNP,
}

_MISC_FORMS = {
    0x07: OpCode.LD_VX_DT,
    0x0A: OpCode.LD_VX_K,
    0x15: OpCode.LD_DT_VX,
    0x18: OpCode.LD_ST_VX,
    0x1E: OpCode.ADD_I_VX,
    0x29: OpCode.LD_F_VX,
    0x33: OpCode.LD_B_VX,
    0x55: OpCode.LD_MEM_VX,
    0x65: OpCode.LD_VX_MEM,
}

# groups identified by the top nibble alone
_PLAIN_FORMS = {
    0x1000: OpCode.JP,
    0x2000: OpCode.CALL,
    0x3000: OpCode.SE_BYTE,
    0x4000: OpCode.SNE_BYTE,
    0x6000: OpCode.LD_BYTE,
    0x7000: OpCode.ADD_BYTE,
    0xA000: OpCode.LD_I,
    0xB000: OpCode.JP_V0,
    0xC000: OpCode.RND,
    0xD000: OpCode.DRW,
}


def fetch_word(memory: bytes | bytearray, addr: int) -> int:
    """Read the big-endian instruction word at `addr` (addresses wrap at 4 KiB)."""
    return (memory[addr & ADDR_MASK] << 8) | memory[(addr + 1) & ADDR_MASK]


def decode_word(word: int) -> Fields:
    """Split a 16-bit word into its instruction fields."""
    word &= 0xFFFF
    return Fields(
        word=word,
        group=word & 0xF000,
        x=(word & 0x0F00) >> 8,
        y=(word & 0x00F0) >> 4,
        n=word & 0x000F,
        kk=word & 0x00FF,
        nnn=word & 0x0FFF,
    )


def decode_instr(memory: bytes | bytearray, pc: int) -> Fields:
    """Fetch and decode the instruction at `pc`. Does not advance anything."""
    return decode_word(fetch_word(memory, pc))


def identify(f: Fields) -> OpCode | None:
    """Map decoded fields to their instruction form.

    Returns None when the word matches no defined form.
    """
    if f.group == 0x0000:
        if f.word == 0x00E0:
            return OpCode.CLS
        if f.word == 0x00EE:
            return OpCode.RET
        return OpCode.SYS
    if f.group in _PLAIN_FORMS:
        return _PLAIN_FORMS[f.group]
    if f.group == 0x5000:
        return OpCode.SE_REG if f.n == 0 else None
    if f.group == 0x9000:
        return OpCode.SNE_REG if f.n == 0 else None
    if f.group == 0x8000:
        return _ALU_FORMS.get(f.n)
    if f.group == 0xE000:
        return _KEY_FORMS.get(f.kk)
    if f.group == 0xF000:
        return _MISC_FORMS.get(f.kk)
    return None


_GROUP_OF = {
    **{op: grp for grp, op in _PLAIN_FORMS.items()},
    OpCode.SYS: 0x0000,
    OpCode.CLS: 0x0000,
    OpCode.RET: 0x0000,
    OpCode.SE_REG: 0x5000,
    OpCode.SNE_REG: 0x9000,
    **{op: 0x8000 for op in _ALU_FORMS.values()},
    **{op: 0xE000 for op in _KEY_FORMS.values()},
    **{op: 0xF000 for op in _MISC_FORMS.values()},
}


def encode_instr(opcode: OpCode, x: int = 0, y: int = 0, n: int = 0, kk: int = 0, nnn: int = 0) -> bytes:
    """Encode an instruction form into its two big-endian bytes.

    Fields that the form does not use are ignored.
    """
    group = _GROUP_OF[opcode]
    if opcode == OpCode.CLS:
        word = 0x00E0
    elif opcode == OpCode.RET:
        word = 0x00EE
    elif opcode in (OpCode.SYS, OpCode.JP, OpCode.CALL, OpCode.LD_I, OpCode.JP_V0):
        word = group | (nnn & 0x0FFF)
    elif opcode in (OpCode.SE_BYTE, OpCode.SNE_BYTE, OpCode.LD_BYTE, OpCode.ADD_BYTE, OpCode.RND):
        word = group | ((x & 0xF) << 8) | (kk & 0xFF)
    elif opcode in (OpCode.SE_REG, OpCode.SNE_REG):
        word = group | ((x & 0xF) << 8) | ((y & 0xF) << 4)
    elif opcode == OpCode.DRW:
        word = group | ((x & 0xF) << 8) | ((y & 0xF) << 4) | (n & 0xF)
    elif group == 0x8000:
        alu_n = next(k for k, v in _ALU_FORMS.items() if v == opcode)
        word = group | ((x & 0xF) << 8) | ((y & 0xF) << 4) | alu_n
    elif group == 0xE000:
        key_kk = next(k for k, v in _KEY_FORMS.items() if v == opcode)
        word = group | ((x & 0xF) << 8) | key_kk
    else:
        misc_kk = next(k for k, v in _MISC_FORMS.items() if v == opcode)
        word = group | ((x & 0xF) << 8) | misc_kk
    return word.to_bytes(2, byteorder="big")


_TEMPLATES = {
    OpCode.SYS: "SYS 0x{nnn:03X}",
    OpCode.CLS: "CLS",
    OpCode.RET: "RET",
    OpCode.JP: "JP 0x{nnn:03X}",
    OpCode.CALL: "CALL 0x{nnn:03X}",
    OpCode.SE_BYTE: "SE V{x:X}, 0x{kk:02X}",
    OpCode.SNE_BYTE: "SNE V{x:X}, 0x{kk:02X}",
    OpCode.SE_REG: "SE V{x:X}, V{y:X}",
    OpCode.LD_BYTE: "LD V{x:X}, 0x{kk:02X}",
    OpCode.ADD_BYTE: "ADD V{x:X}, 0x{kk:02X}",
    OpCode.LD_REG: "LD V{x:X}, V{y:X}",
    OpCode.OR: "OR V{x:X}, V{y:X}",
    OpCode.AND: "AND V{x:X}, V{y:X}",
    OpCode.XOR: "XOR V{x:X}, V{y:X}",
    OpCode.ADD_REG: "ADD V{x:X}, V{y:X}",
    OpCode.SUB: "SUB V{x:X}, V{y:X}",
    OpCode.SHR: "SHR V{x:X}",
    OpCode.SUBN: "SUBN V{x:X}, V{y:X}",
    OpCode.SHL: "SHL V{x:X}",
    OpCode.SNE_REG: "SNE V{x:X}, V{y:X}",
    OpCode.LD_I: "LD I, 0x{nnn:03X}",
    OpCode.JP_V0: "JP V0, 0x{nnn:03X}",
    OpCode.RND: "RND V{x:X}, 0x{kk:02X}",
    OpCode.DRW: "DRW V{x:X}, V{y:X}, {n}",
    OpCode.SKP: "SKP V{x:X}",
    OpCode.SKNP: "SKNP V{x:X}",
    OpCode.LD_VX_DT: "LD V{x:X}, DT",
    OpCode.LD_VX_K: "LD V{x:X}, K",
    OpCode.LD_DT_VX: "LD DT, V{x:X}",
    OpCode.LD_ST_VX: "LD ST, V{x:X}",
    OpCode.ADD_I_VX: "ADD I, V{x:X}",
    OpCode.LD_F_VX: "LD F, V{x:X}",
    OpCode.LD_B_VX: "LD B, V{x:X}",
    OpCode.LD_MEM_VX: "LD [I], V{x:X}",
    OpCode.LD_VX_MEM: "LD V{x:X}, [I]",
}


def mnemonic(f: Fields) -> str:
    """Get instruction mnemonic."""
    opcode = identify(f)
    if opcode is None:
        return f"??? 0x{f.word:04X}"
    return _TEMPLATES[opcode].format(**f._asdict())
