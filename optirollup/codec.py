"""
Fixed-width decimal floating point codec used for every monetary field.

A value is stored as ``exponent (E bits) || mantissa (M bits)`` and means
``mantissa * 10**exponent``. Encoding is canonical: trailing decimal zeros are
always moved into the exponent, so equal values always have equal bytes and
signed messages can be compared without decoding.
"""
import secrets
from decimal import Decimal, InvalidOperation, ROUND_FLOOR

from .errors import EncodingError


class DecimalCodec:
    def __init__(self, exponent_bits: int, mantissa_bits: int, place: int = 0):
        """
        Args:
            exponent_bits: Width of the base-10 exponent field
            mantissa_bits: Width of the mantissa field
            place: Decimal places of the human unit (6 for a USDT-like asset)
        """
        if (exponent_bits + mantissa_bits) % 8 != 0:
            raise ValueError("Codec width must be a whole number of bytes")
        self.exponent_bits = exponent_bits
        self.mantissa_bits = mantissa_bits
        self.place = place
        self.mantissa_max = (1 << mantissa_bits) - 1
        self.exponent_max = (1 << exponent_bits) - 1
        self.exponent_mask = self.exponent_max << mantissa_bits
        self.bytes_length = (exponent_bits + mantissa_bits) // 8

    def __repr__(self) -> str:
        return f"DecimalCodec(exponent_bits={self.exponent_bits}, mantissa_bits={self.mantissa_bits}, place={self.place})"

    def encode(self, value: int) -> bytes:
        """Encodes ``value`` exactly, raising EncodingError if it does not fit."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise EncodingError(f"Can not encode non-integer input {value!r}")
        if value < 0:
            raise EncodingError(f"Can not encode negative input {value}")

        mantissa = value
        exponent = 0
        for _ in range(self.exponent_max):
            if mantissa == 0 or mantissa % 10 != 0:
                break
            mantissa //= 10
            exponent += 1

        if mantissa > self.mantissa_max:
            raise EncodingError(
                f"Can not encode input {value}, mantissa {mantissa} should not be larger than {self.mantissa_max}"
            )
        return ((exponent << self.mantissa_bits) | mantissa).to_bytes(self.bytes_length, 'big')

    encode_exact = encode

    def decode(self, data: bytes | int) -> int:
        """Decodes any bit pattern; never fails."""
        raw = int.from_bytes(data, 'big') if isinstance(data, (bytes, bytearray)) else int(data)
        mantissa = raw & self.mantissa_max
        exponent = (raw & self.exponent_mask) >> self.mantissa_bits
        return mantissa * 10 ** exponent

    def round(self, value: int) -> int:
        """Round the input down to the largest encodable value."""
        if value < 0:
            raise EncodingError(f"Can't cast negative input {value}")
        mantissa = value
        for exponent in range(self.exponent_max + 1):
            if mantissa <= self.mantissa_max:
                return mantissa * 10 ** exponent
            mantissa //= 10
        raise EncodingError(f"Can't cast input {value}")

    def encode_rounded(self, value: int) -> bytes:
        """Lossy tier: lower precision until the value fits, then encode."""
        return self.encode(self.round(value))

    def is_canonical(self, data: bytes) -> bool:
        """True if ``data`` is the unique encoding of the value it decodes to."""
        if len(data) != self.bytes_length:
            return False
        return self.encode(self.decode(data)) == bytes(data)

    # --- human unit boundary ---

    def parse(self, human_value: str) -> int:
        """
        Parse a human readable value like "1.23" into integer units.

        The result is not necessarily encodable; pass it through ``round``
        or ``encode`` as appropriate.
        """
        try:
            scaled = Decimal(human_value).scaleb(self.place)
        except InvalidOperation as e:
            raise EncodingError(f"Can not parse {human_value!r}") from e
        if scaled < 0:
            raise EncodingError(f"Can not parse negative value {human_value!r}")
        if scaled != scaled.to_integral_value():
            raise EncodingError(f"{human_value!r} has more than {self.place} decimal places")
        return int(scaled)

    def format(self, units: int) -> str:
        """Format integer units as a human readable value like "1.23"."""
        whole, frac = divmod(int(units), 10 ** self.place)
        if self.place == 0:
            return str(whole)
        frac_str = str(frac).rjust(self.place, '0').rstrip('0') or '0'
        return f"{whole}.{frac_str}"

    def cast_int(self, human_value) -> int:
        """Given an arbitrary human number returns encodable integer units."""
        units = Decimal(str(human_value)).scaleb(self.place).to_integral_value(rounding=ROUND_FLOOR)
        return self.round(int(units))

    def cast(self, human_value) -> Decimal:
        """Given an arbitrary human number returns the nearest lower encodable human number."""
        return Decimal(self.cast_int(human_value)).scaleb(-self.place)

    def rand(self) -> bytes:
        return secrets.token_bytes(self.bytes_length)

    def rand_int(self) -> int:
        return self.decode(self.rand())


# 2-byte wire amounts in compressed transactions
FLOAT16 = DecimalCodec(4, 12)

# Human-facing amounts of a 6-decimal reference asset
USDT = DecimalCodec(4, 12, place=6)

# Balance and burn fields of an account leaf
STATE_AMOUNT = DecimalCodec(8, 120)
