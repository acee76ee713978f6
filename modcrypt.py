# modcrypt.py - Modular arithmetic engine and textbook public-key demos
# Copyright 2024 Christopher League <league@contrapunctus.net>

# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:

# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.

# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""Modular arithmetic engine and textbook public-key cryptosystems.

>>> modpow(4, 13, 497)
445

This module collects the number theory behind a handful of classroom
cryptosystems: fast modular exponentiation and inversion, primitive-root
discovery, and elliptic-curve point arithmetic.  On top of that sit 'textbook'
RSA, ElGamal (including its homomorphic product and rerandomization), and
elliptic-curve ElGamal.  Everything is sized for small demonstration
parameters, so please do not rely on this code for actual privacy!

The arithmetic makes no attempt to run in constant time.  It also does not
check that the moduli you supply are prime, or that the curves you supply are
non-singular.  Those are preconditions, and they are your responsibility.

This can be imported as a module into other Python programs or Jupyter
notebooks using statements like these:

    import modcrypt
    from modcrypt import modpow, ElGamalKeyPair

It can also be run as a program to invoke the unit tests or provide a
rudimentary command-line interface, using commands like these:

    python modcrypt.py
    python -m modcrypt group 23
    python -m modcrypt rsa 61 53 65
    python -m modcrypt -v elgamal 23 6 10
    python -m modcrypt ecc 17 2 2 3 6 3

The implementation uses only pure Python, but the test code relies on some
external packages.  At the time of writing, they include hypothesis[1] and
pycryptodome[2].

 1. https://hypothesis.readthedocs.io/en/latest/
 2. https://www.pycryptodome.org/

This module may assume you are using Python 3.10 or later.

"""

from abc import ABC, abstractmethod
from collections.abc import Container
from contextlib import contextmanager

import argparse
import functools
import hashlib
import io
import itertools
import logging
import operator
import secrets
import sys
import typing as t
import unittest

DEFAULT_GENERATOR_HINT = 2
DEFAULT_NONCE_HINT = 13
DEFAULT_NONCE_GAP = 27
DEFAULT_RSA_EXPONENT_HINT = 3


####################################################################
###                                                       ERRORS ###


class DomainError(ArithmeticError):
    "Base class for the failures this module reports."


class InvalidModulus(DomainError, ValueError):
    "A modulus was zero or negative."


class NonInvertible(DomainError):
    "An inverse was needed for a value sharing a factor with the modulus."


class NoGeneratorFound(DomainError):
    "No primitive root was found in the searched range."


class NoValidExponentFound(DomainError):
    "No scalar coprime to the group order was found in the searched range."


class NoBasePointFound(DomainError):
    "The curve has no affine point over its field."


####################################################################
###                                            ARITHMETIC KERNEL ###


def check_modulus(mod: int) -> int:
    """Return MOD unchanged, unless it is not positive.

    >>> check_modulus(0)  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    InvalidModulus: modulus must be positive, got 0
    """
    if mod <= 0:
        raise InvalidModulus(f"modulus must be positive, got {mod}")
    return mod


def modulo(mod: int):
    """The standard mod operator, but with curried (and flipped) arguments.

    >>> seven = modulo(7)
    >>> seven(-3)
    4
    """
    return lambda x: x % mod


def fastpow(
    base, exp: int, mod=lambda x: x, mul=operator.mul, identity=1
) -> t.Any:
    """Fast exponentiation, with a customizable multiplication operator and
    identity.  When MUL is an addition (of numbers, or of curve points), this
    is the double-and-add method of scalar multiplication.

    >>> fastpow(3, 10)
    59049
    >>> fastpow(5, 117, modulo(19))
    1
    >>> [fastpow(3, k, modulo(7)) for k in range(7)]
    [1, 3, 2, 6, 4, 5, 1]
    >>> fastpow(5, 7, mul=operator.add, identity=0)
    35
    """
    assert exp >= 0
    result = mod(identity)
    while exp > 0:
        if exp & 1:  # Odd: multiply and decrement
            result = mod(mul(result, base))
            exp -= 1
        else:  # Even: square and halve
            base = mod(mul(base, base))
            exp //= 2
    return result


def gcd(fst: int, snd: int) -> int:
    """Greatest common divisor of two non-negative integers, by the
    Euclidean algorithm.

    >>> gcd(84, 36), gcd(17, 0), gcd(0, 17)
    (12, 17, 17)
    """
    while snd != 0:
        fst, snd = snd, fst % snd
    return fst


def modpow(base: int, exp: int, mod: int) -> int:
    """Compute BASE**EXP % MOD by square-and-multiply, reducing the running
    product at every step.  Modulo one, everything is zero.

    >>> modpow(5, 7, 33)
    14
    >>> modpow(12345, 0, 1)
    0
    """
    check_modulus(mod)
    if exp < 0:
        raise ValueError(f"exponent must be non-negative, got {exp}")
    return fastpow(base % mod, exp, modulo(mod))


def modinverse(val: int, mod: int) -> int:
    """Multiplicative modular inverse using extended Euclidean algorithm.  The
    result is in the range [0, MOD).  By convention, the inverse of anything
    modulo one is zero.

    >>> modinverse(3, 11), modinverse(-3, 11), modinverse(7, 20)
    (4, 7, 3)
    >>> modinverse(6, 9)  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    NonInvertible: 6 has no inverse modulo 9, gcd is 3
    """
    check_modulus(mod)
    if mod == 1:
        return 0
    aaa, bbb = mod, val % mod
    tt1, tt2 = 0, 1
    while bbb != 0:
        quo, rem = divmod(aaa, bbb)
        aaa, bbb, tt1, tt2 = bbb, rem, tt2, tt1 - quo * tt2
    if aaa != 1:
        raise NonInvertible(f"{val} has no inverse modulo {mod}, gcd is {aaa}")
    return tt1 % mod


####################################################################
###                                        GENERATORS AND NONCES ###


def prime_factors(num: int) -> list[int]:
    """List the distinct prime factors of NUM, in increasing order, using
    trial division up to its square root.

    >>> prime_factors(360), prime_factors(22), prime_factors(1)
    ([2, 3, 5], [2, 11], [])
    """
    factors = []
    cand = 2
    while cand * cand <= num:
        if num % cand == 0:
            factors.append(cand)
            while num % cand == 0:
                num //= cand
        cand += 1
    if num > 1:
        factors.append(num)
    return factors


def is_generator(
    cand: int, prime: int, factors: t.Optional[list[int]] = None
) -> bool:
    """Check whether CAND is a primitive root modulo PRIME.  By Lucas's
    criterion, it is one exactly when CAND**((PRIME-1)/f) is not 1 for every
    prime factor f of PRIME-1.  Pass FACTORS to avoid refactoring PRIME-1.

    >>> [g for g in range(11) if is_generator(g, 11)]
    [2, 6, 7, 8]
    """
    if cand % prime == 0:
        return False
    phi = prime - 1
    if factors is None:
        factors = prime_factors(phi)
    return all(modpow(cand, phi // fac, prime) != 1 for fac in factors)


def find_generator(prime: int, hint: int = DEFAULT_GENERATOR_HINT) -> int:
    """Search upward from HINT for a primitive root modulo PRIME, giving up
    when the candidate reaches PRIME.

    >>> find_generator(23), find_generator(23, hint=6)
    (5, 7)
    >>> find_generator(23, hint=22)  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    NoGeneratorFound: no generator modulo 23 in [22, 22]
    """
    check_modulus(prime)
    start = max(hint, 1)
    factors = prime_factors(prime - 1)
    for cand in range(start, prime):
        if is_generator(cand, prime, factors):
            logging.debug("find_generator: found %d modulo %d", cand, prime)
            return cand
    raise NoGeneratorFound(
        f"no generator modulo {prime} in [{start}, {prime - 1}]"
    )


def find_coprime_scalar(
    bound: int,
    hint: int,
    lower: int = 1,
    *,
    step: int = 1,
    stop: t.Optional[int] = None,
) -> int:
    """Scan upward from HINT (but never below LOWER), in increments of STEP,
    for a scalar coprime to BOUND.  The scan ends before STOP, which defaults
    to BOUND itself.

    >>> find_coprime_scalar(22, 13), find_coprime_scalar(22, 14)
    (13, 15)
    >>> find_coprime_scalar(20, 3, step=2, stop=20)
    3
    >>> find_coprime_scalar(12, 2, stop=5)  # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    NoValidExponentFound: nothing in [2, 4] is coprime to 12
    """
    if stop is None:
        stop = bound
    start = max(hint, lower)
    for cand in range(start, stop, step):
        if gcd(cand, bound) == 1:
            return cand
    raise NoValidExponentFound(
        f"nothing in [{start}, {stop - 1}] is coprime to {bound}"
    )


def discrete_logs(
    base: int, mod: int, goal: int, start: int = 0, progress: int = 1 << 16
) -> t.Iterator[int]:
    """Iterate through every exponent k in [START, MOD) such that
    (BASE**k) % MOD == GOAL.  Each PROGRESS candidates, log a status message.

    >>> next(discrete_logs(7, 23, 12))
    8
    >>> list(discrete_logs(3, 7, 6, start=1))
    [3]
    >>> list(discrete_logs(2, 10, 5))
    []
    """
    goal %= check_modulus(mod)
    result = modpow(base, start, mod)
    for k in range(start, mod):
        if result == goal:
            logging.debug("discrete_logs: found 0x%x", k)
            yield k
        if k % progress == 0 and k > start:
            logging.debug("discrete_logs: check 0x%x...", k)
        result = result * base % mod


class NonceSource(ABC):
    """A supply of ephemeral scalars.  Each call to scalar(BOUND) returns a
    fresh k with LOWER <= k < BOUND and gcd(k, BOUND) == 1."""

    LOWER = 2

    @abstractmethod
    def scalar(self, bound: int) -> int:
        "Return an ephemeral scalar coprime to BOUND."


class RandomNonces(NonceSource):
    """Unpredictable nonces: start at a random candidate, then scan upward for
    a coprime scalar.  The scan always succeeds, because BOUND-1 is coprime to
    BOUND.

    >>> k = RandomNonces().scalar(22)
    >>> 2 <= k < 22 and gcd(k, 22) == 1
    True
    """

    def __init__(self, randbelow=secrets.randbelow):
        self.randbelow = randbelow

    def scalar(self, bound: int) -> int:
        span = bound - self.LOWER
        if span < 1:
            raise NoValidExponentFound(f"no scalars below {bound}")
        return find_coprime_scalar(bound, self.LOWER + self.randbelow(span))


class ScanNonces(NonceSource):
    """Deterministic nonces by linear scan.  These are entirely predictable,
    so use them only for tests and reproducible demonstrations.  The first
    scan starts at HINT; each later scan starts GAP past the previous result.

    >>> nonces = ScanNonces()
    >>> nonces.scalar(100), nonces.scalar(100)
    (13, 41)
    """

    def __init__(
        self, hint: int = DEFAULT_NONCE_HINT, gap: int = DEFAULT_NONCE_GAP
    ):
        self.hint = hint
        self.gap = gap

    def scalar(self, bound: int) -> int:
        k = find_coprime_scalar(bound, self.hint, self.LOWER)
        self.hint = k + self.gap
        return k


def ephemeral(
    k: t.Optional[int], bound: int, nonces: t.Optional[NonceSource] = None
) -> int:
    "Return K if the caller chose one, otherwise draw one for BOUND."
    if k is not None:
        return k
    if nonces is None:
        nonces = RandomNonces()
    return nonces.scalar(bound)


####################################################################
###                                            VALUES AND GROUPS ###


class Ciphertext(t.NamedTuple):
    "An ordered ciphertext pair: integers for ElGamal, points for EC-ElGamal."

    c1: t.Any
    c2: t.Any


class Signature(t.NamedTuple):
    "An ElGamal signature pair."

    r: int
    s: int


class CurveParams(t.NamedTuple):
    """The short Weierstrass curve y**2 = x**3 + A*x + B over the integers
    modulo PRIME.  PRIME is assumed prime and the curve non-singular; neither
    is checked."""

    prime: int
    a: int
    b: int


class Point(t.NamedTuple):
    """An affine point on a curve.  The point at infinity, INFINITY, is the
    one whose coordinates are both None."""

    x: t.Optional[int]
    y: t.Optional[int]

    @property
    def is_identity(self) -> bool:
        "Is this the point at infinity?"
        return self.x is None


INFINITY = Point(None, None)


class AbstractGroupoid(ABC, Container):
    """A simple representation of an algebraic Group: a callable binary
    operation, an identity value, and an inverse."""

    identity: t.Any

    @abstractmethod
    def __call__(self, fst, snd):  # pragma: no cover
        ...

    @abstractmethod
    def inverse(self, val):
        "Return the inverse of VAL in this group."

    def power(self, val, exp: int):
        "Apply the operation to EXP copies of VAL; negative EXP uses inverse."
        if exp < 0:
            val, exp = self.inverse(val), -exp
        return fastpow(val, exp, mul=self, identity=self.identity)


class ModularGroup(AbstractGroupoid):
    """The multiplicative group of nonzero integers modulo a PRIME.

    >>> grp = ModularGroup(23)
    >>> grp(5, 14), grp.inverse(6), grp.power(5, 6), grp.power(5, -1)
    (1, 4, 8, 14)
    """

    identity = 1

    def __init__(self, prime: int):
        self.prime = check_modulus(prime)

    def __repr__(self):
        return f"ModularGroup({self.prime})"

    def __call__(self, fst: int, snd: int) -> int:
        return fst * snd % self.prime

    def __contains__(self, val):
        return isinstance(val, int) and 0 < val < self.prime

    def inverse(self, val: int) -> int:
        return modinverse(val, self.prime)


class CiphertextGroup(AbstractGroupoid):
    """ElGamal ciphertext pairs modulo a PRIME under component-wise product.
    Combining encryptions of m1 and m2 under the same public key produces an
    encryption of m1*m2.

    >>> CiphertextGroup(23)(Ciphertext(10, 14), Ciphertext(2, 3))
    Ciphertext(c1=20, c2=19)
    """

    identity = Ciphertext(1, 1)

    def __init__(self, prime: int):
        self.field = ModularGroup(prime)

    def __repr__(self):
        return f"CiphertextGroup({self.field.prime})"

    def __call__(self, fst: Ciphertext, snd: Ciphertext) -> Ciphertext:
        field = self.field
        return Ciphertext(field(fst[0], snd[0]), field(fst[1], snd[1]))

    def __contains__(self, val):
        return (
            isinstance(val, tuple)
            and len(val) == 2
            and all(part in self.field for part in val)
        )

    def inverse(self, val: Ciphertext) -> Ciphertext:
        field = self.field
        return Ciphertext(field.inverse(val[0]), field.inverse(val[1]))


####################################################################
###                                              ELLIPTIC CURVES ###


def on_curve(point: Point, curve: CurveParams) -> bool:
    """Check that POINT satisfies the equation of CURVE.  The point at
    infinity is on every curve.

    >>> on_curve(Point(5, 1), CurveParams(17, 2, 2))
    True
    >>> on_curve(Point(5, 2), CurveParams(17, 2, 2))
    False
    """
    if point.is_identity:
        return True
    prime, aaa, bbb = curve
    if not (0 <= point.x < prime and 0 <= point.y < prime):
        return False
    return (point.y**2 - point.x**3 - aaa * point.x - bbb) % prime == 0


def ec_negate(point: Point, curve: CurveParams) -> Point:
    """Reflect POINT across the x axis.

    >>> ec_negate(Point(5, 1), CurveParams(17, 2, 2))
    Point(x=5, y=16)
    """
    if point.is_identity:
        return INFINITY
    return Point(point.x, (curve.prime - point.y) % curve.prime)


def ec_add(fst: Point, snd: Point, curve: CurveParams) -> Point:
    """Add two points of CURVE using the chord-and-tangent law.

    >>> curve = CurveParams(17, 2, 2)
    >>> ec_add(Point(5, 1), Point(5, 1), curve)
    Point(x=6, y=3)
    >>> ec_add(Point(5, 1), Point(6, 3), curve)
    Point(x=10, y=6)
    >>> ec_add(Point(5, 1), Point(5, 16), curve) == INFINITY
    True
    """
    if fst.is_identity:
        return snd
    if snd.is_identity:
        return fst
    prime = curve.prime
    if fst.x == snd.x and (fst.y != snd.y or fst.y == 0):
        return INFINITY  # Vertical line: FST and SND are inverses
    if fst == snd:  # Tangent
        slope = (3 * fst.x * fst.x + curve.a) * modinverse(2 * fst.y, prime)
    else:  # Chord
        slope = (snd.y - fst.y) * modinverse(snd.x - fst.x, prime)
    slope %= prime
    x_r = (slope * slope - fst.x - snd.x) % prime
    return Point(x_r, (slope * (fst.x - x_r) - fst.y) % prime)


def ec_multiply(point: Point, scalar: int, curve: CurveParams) -> Point:
    """Scalar multiplication by double-and-add, starting from the point at
    infinity.  A negative SCALAR multiplies the negation of POINT.

    >>> curve = CurveParams(17, 2, 2)
    >>> ec_multiply(Point(5, 1), 2, curve)
    Point(x=6, y=3)
    >>> ec_multiply(Point(5, 1), -2, curve)
    Point(x=6, y=14)
    >>> ec_multiply(Point(5, 1), 19, curve) == INFINITY
    True
    """
    if scalar < 0:
        point, scalar = ec_negate(point, curve), -scalar
    add = functools.partial(ec_add, curve=curve)
    return fastpow(point, scalar, mul=add, identity=INFINITY)


def curve_points(curve: CurveParams) -> t.Iterator[Point]:
    """Iterate through the affine points of CURVE, by increasing x and then
    increasing y.  This is a brute-force search, fit only for tiny fields.

    >>> points = list(curve_points(CurveParams(5, 1, 1)))
    >>> len(points), points[:3]
    (8, [Point(x=0, y=1), Point(x=0, y=4), Point(x=2, y=1)])
    """
    prime, aaa, bbb = curve
    check_modulus(prime)
    for x in range(prime):
        rhs = (x * x * x + aaa * x + bbb) % prime
        for y in range(prime):
            if y * y % prime == rhs:
                yield Point(x, y)


def find_base_point(curve: CurveParams) -> Point:
    """Find the first point of CURVE, in the order of curve_points.

    >>> find_base_point(CurveParams(17, 2, 2))
    Point(x=0, y=6)
    >>> find_base_point(CurveParams(3, 2, 2))
    ... # doctest: +IGNORE_EXCEPTION_DETAIL
    Traceback (most recent call last):
    NoBasePointFound: no points on CurveParams(prime=3, a=2, b=2)
    """
    point = next(curve_points(curve), None)
    if point is None:
        raise NoBasePointFound(f"no points on {curve}")
    logging.debug("find_base_point: found %s", point)
    return point


class CurveGroup(AbstractGroupoid):
    """The points of an elliptic curve, with the point at infinity, under
    point addition.

    >>> grp = CurveGroup(CurveParams(17, 2, 2))
    >>> grp.power(Point(5, 1), 3), grp.inverse(Point(6, 3))
    (Point(x=10, y=6), Point(x=6, y=14))
    """

    identity = INFINITY

    def __init__(self, curve: CurveParams):
        check_modulus(curve.prime)
        self.curve = curve

    def __repr__(self):
        return f"CurveGroup({self.curve})"

    def __call__(self, fst: Point, snd: Point) -> Point:
        return ec_add(fst, snd, self.curve)

    def __contains__(self, val):
        return isinstance(val, Point) and on_curve(val, self.curve)

    def inverse(self, val: Point) -> Point:
        return ec_negate(val, self.curve)

    def power(self, val: Point, exp: int) -> Point:
        return ec_multiply(val, exp, self.curve)


####################################################################
###                                                          RSA ###


def is_prime(num, trials=20, randbelow=secrets.randbelow):
    """This is the Miller-Rabin (probabilistic) primality test.

    >>> [p for p in range(100, 150) if is_prime(p)]
    [101, 103, 107, 109, 113, 127, 131, 137, 139, 149]
    """
    if num < 2:
        return False
    for prime in [2, 3, 5, 7, 11, 13, 17, 19, 23, 29]:
        if num % prime == 0:
            return num == prime
    sss, ddd = 0, num - 1
    while ddd % 2 == 0:
        sss, ddd = sss + 1, ddd >> 1
    for _ in range(trials):
        trial = 2 + randbelow(num - 3)
        yyy = modpow(trial, ddd, num)
        if yyy in (1, num - 1):
            continue
        for _ in range(1, sss):
            yyy = yyy * yyy % num
            if yyy == 1:
                return False
            if yyy == num - 1:
                break
        else:
            return False
    return True


def next_prime(num: int) -> int:
    """Find the next prime larger than NUM.

    >>> next_prime(60), next_prime(2)
    (61, 3)
    """
    if num < 2:
        return 2
    num += 1 + (num % 2)
    while not is_prime(num):
        num += 2
    return num


class RsaPublicKey:
    "An RSA public key, which consists of modulus and public exponent."

    def __init__(self, mod: int, exp: int):
        self.mod = check_modulus(mod)
        self.exp = exp

    def __eq__(self, other):
        return (
            isinstance(other, RsaPublicKey)
            and self.mod == other.mod
            and self.exp == other.exp
        )

    def __repr__(self):
        return f"RsaPublicKey({self.mod}, {self.exp})"

    def check_message(self, msg: int):
        "Ensure that MSG is a residue modulo our modulus."
        if not 0 <= msg < self.mod:
            raise ValueError(f"message {msg} is not in [0, {self.mod})")

    def digest(self, buf: bytes, hash_name: str = "sha256") -> int:
        "Hash BUF, then reduce the hash to an integer modulo our modulus."
        mhash = hashlib.new(hash_name, buf).digest()
        return int.from_bytes(mhash, byteorder="little") % self.mod

    def encrypt(self, msg: int) -> int:
        """Encrypt a number using this public key.  NOTE: This is so-called
        'textbook' RSA encryption, without any padding.

        >>> RsaKeyPair(61, 53).pub.encrypt(65)
        1317
        """
        self.check_message(msg)
        return modpow(msg, self.exp, self.mod)

    def verify(self, msg: int, signature: int) -> bool:
        """Verify a textbook signature on the number MSG.

        >>> kp = RsaKeyPair(61, 53)
        >>> kp.pub.verify(65, kp.sign(65)), kp.pub.verify(66, kp.sign(65))
        (True, False)
        """
        return modpow(signature, self.exp, self.mod) == msg

    def verify_bytes(
        self, buf: bytes, signature: int, hash_name: str = "sha256"
    ) -> bool:
        "Verify a signature made by sign_bytes."
        return self.verify(self.digest(buf, hash_name), signature)


class RsaKeyPair:
    """An object representing a public/secret key pair.  The two factors are
    assumed to be distinct primes; that is not checked.  Unless EXP is given,
    the public exponent is the smallest odd number from 3 that is coprime to
    the totient.

    >>> kp = RsaKeyPair(3, 11)
    >>> kp.pub, kp.secret_exp
    (RsaPublicKey(33, 3), 7)
    >>> RsaKeyPair(61, 53).secret_exp
    1783
    """

    def __init__(
        self, prime1: int, prime2: int, /, exp: t.Optional[int] = None
    ):
        self.prime1 = prime1
        self.prime2 = prime2
        self.totient = (prime1 - 1) * (prime2 - 1)
        if exp is None:
            exp = find_coprime_scalar(
                self.totient,
                DEFAULT_RSA_EXPONENT_HINT,
                step=2,
                stop=self.totient,
            )
        self.pub = RsaPublicKey(prime1 * prime2, exp)
        self.secret_exp = modinverse(exp, self.totient)

    def __eq__(self, other):
        return (
            isinstance(other, RsaKeyPair)
            and self.pub == other.pub
            and self.prime1 == other.prime1
            and self.prime2 == other.prime2
            and self.secret_exp == other.secret_exp
        )

    def __repr__(self):
        return f"RsaKeyPair({self.prime1}, {self.prime2}, exp={self.pub.exp})"

    @classmethod
    def generate(cls, nbits: int = 64, randbelow=secrets.randbelow):
        "Generate a key pair using two distinct random primes of NBITS/2 bits."
        half = 1 << (nbits // 2 - 1)
        prime1 = next_prime(half + randbelow(half))
        prime2 = next_prime(half + randbelow(half))
        while prime2 == prime1:
            prime2 = next_prime(prime2)
        return cls(prime1, prime2)

    def decrypt(self, cipher: int) -> int:
        """Decrypt a number using this secret key.

        >>> RsaKeyPair(61, 53).decrypt(1317)
        65
        """
        self.pub.check_message(cipher)
        return modpow(cipher, self.secret_exp, self.pub.mod)

    def sign(self, msg: int) -> int:
        """Sign the number MSG directly, without hashing.

        >>> RsaKeyPair(3, 11, exp=7).sign(14)
        5
        """
        self.pub.check_message(msg)
        return modpow(msg, self.secret_exp, self.pub.mod)

    def sign_bytes(self, buf: bytes, hash_name: str = "sha256") -> int:
        """Sign the hash of a byte string.

        >>> kp = RsaKeyPair(61, 53)
        >>> kp.pub.verify_bytes(b"Hello!", kp.sign_bytes(b"Hello!"))
        True
        """
        return self.sign(self.pub.digest(buf, hash_name))

    def alternate_exponents(self, count: int = 1) -> list[int]:
        """Exponents are only meaningful modulo the totient, so adding any
        multiple of it to the secret exponent yields another one that works.

        >>> RsaKeyPair(3, 11).alternate_exponents(2)
        [27, 47]
        """
        multiples = range(1, count + 1)
        return [self.secret_exp + i * self.totient for i in multiples]

    def decrypting_exponents(
        self, cipher: int, plain: int, count: int = 2
    ) -> list[int]:
        """Brute-force the first COUNT exponents, from 3 up to the modulus,
        that map CIPHER back to PLAIN.  Only the order of CIPHER matters, so
        there are usually several smaller than the alternate exponents.

        >>> kp = RsaKeyPair(3, 11)
        >>> kp.decrypting_exponents(kp.pub.encrypt(5), 5)
        [7, 17]
        """
        found = discrete_logs(cipher, self.pub.mod, plain, start=3)
        return list(itertools.islice(found, count))


####################################################################
###                                                      ELGAMAL ###


def generate_group(
    nbits: int = 24,
    hint: int = DEFAULT_GENERATOR_HINT,
    randbelow=secrets.randbelow,
) -> tuple[int, int]:
    """Pick a random prime of about NBITS bits, and a primitive root found by
    searching upward from HINT.  The search factors PRIME-1 by trial division,
    so keep NBITS small."""
    half = 1 << (nbits - 1)
    prime = next_prime(half + randbelow(half))
    return prime, find_generator(prime, hint)


class ElGamalPublicKey:
    """ElGamal public parameters: a PRIME modulus, a generator GEN of its
    multiplicative group, and the public value PUB = GEN**x % PRIME for some
    secret x.  PRIME is assumed prime; that is not checked."""

    def __init__(self, prime: int, gen: int, pub: int):
        self.prime = check_modulus(prime)
        self.gen = gen
        self.pub = pub
        self.ciphertexts = CiphertextGroup(prime)

    def __eq__(self, other):
        return (
            isinstance(other, ElGamalPublicKey)
            and self.prime == other.prime
            and self.gen == other.gen
            and self.pub == other.pub
        )

    def __repr__(self):
        return f"ElGamalPublicKey({self.prime}, {self.gen}, {self.pub})"

    def check_message(self, msg: int):
        "Ensure that MSG is a residue modulo our prime."
        if not 0 <= msg < self.prime:
            raise ValueError(f"message {msg} is not in [0, {self.prime})")

    def encrypt(
        self,
        msg: int,
        k: t.Optional[int] = None,
        *,
        nonces: t.Optional[NonceSource] = None,
    ) -> Ciphertext:
        """Encrypt MSG with the ephemeral scalar K.  If K is not given, draw
        one coprime to PRIME-1 from NONCES (by default, RandomNonces).

        >>> ElGamalKeyPair(23, 5, 6).pub.encrypt(10, k=3)
        Ciphertext(c1=10, c2=14)
        """
        self.check_message(msg)
        k = ephemeral(k, self.prime - 1, nonces)
        return Ciphertext(
            modpow(self.gen, k, self.prime),
            msg * modpow(self.pub, k, self.prime) % self.prime,
        )

    def combine(self, fst: Ciphertext, snd: Ciphertext) -> Ciphertext:
        """The homomorphic product: given encryptions of m1 and m2 under this
        key, produce an encryption of m1*m2 without decrypting either.

        >>> kp = ElGamalKeyPair(23, 5, 6)
        >>> kp.decrypt(kp.pub.combine(kp.pub.encrypt(3), kp.pub.encrypt(9)))
        4
        """
        return self.ciphertexts(fst, snd)

    def rerandomize(
        self,
        ctxt: Ciphertext,
        k: t.Optional[int] = None,
        *,
        nonces: t.Optional[NonceSource] = None,
    ) -> Ciphertext:
        """Multiply CTXT by a fresh encryption of 1, so that it still decrypts
        to the same message but cannot be linked to the original.

        >>> ElGamalKeyPair(23, 5, 6).pub.rerandomize(Ciphertext(10, 14), k=5)
        Ciphertext(c1=16, c2=17)
        """
        return self.combine(ctxt, self.encrypt(1, k, nonces=nonces))

    def verify(self, msg: int, signature: Signature) -> bool:
        """Verify an ElGamal signature: GEN**MSG == PUB**r * r**s.  Exponents
        of GEN only matter modulo PRIME-1, so MSG may be any integer.

        >>> pub = ElGamalKeyPair(23, 5, 6).pub
        >>> pub.verify(7, Signature(10, 19)), pub.verify(-1, Signature(10, 19))
        (True, False)
        """
        rrr, sss = signature
        if not (0 < rrr < self.prime and sss >= 0):
            return False
        lhs = modpow(self.gen, msg % (self.prime - 1), self.prime)
        rhs = modpow(self.pub, rrr, self.prime) * modpow(rrr, sss, self.prime)
        return lhs == rhs % self.prime


class ElGamalKeyPair:
    """An ElGamal secret exponent with its public key.

    >>> kp = ElGamalKeyPair(23, 5, 6)
    >>> kp.pub
    ElGamalPublicKey(23, 5, 8)
    >>> kp.decrypt(Ciphertext(10, 14))
    10
    """

    def __init__(self, prime: int, gen: int, secret: int):
        self.secret = secret
        self.pub = ElGamalPublicKey(prime, gen, modpow(gen, secret, prime))

    def __eq__(self, other):
        return (
            isinstance(other, ElGamalKeyPair)
            and self.pub == other.pub
            and self.secret == other.secret
        )

    def __repr__(self):
        pub = self.pub
        return f"ElGamalKeyPair({pub.prime}, {pub.gen}, {self.secret})"

    @classmethod
    def generate(
        cls,
        prime: int,
        gen: t.Optional[int] = None,
        hint: int = DEFAULT_GENERATOR_HINT,
        randbelow=secrets.randbelow,
    ):
        """Generate a key pair modulo PRIME with a secret in [1, PRIME-2].
        Unless GEN is given, search for one upward from HINT."""
        if gen is None:
            gen = find_generator(prime, hint)
        return cls(prime, gen, 1 + randbelow(prime - 2))

    def decrypt(self, ctxt: Ciphertext) -> int:
        "Recover the message: c2 divided by the shared secret c1**x."
        c1, c2 = ctxt
        prime = self.pub.prime
        shared = modpow(c1, self.secret, prime)
        return c2 * modinverse(shared, prime) % prime

    def sign(
        self,
        msg: int,
        k: t.Optional[int] = None,
        *,
        nonces: t.Optional[NonceSource] = None,
    ) -> Signature:
        """Sign the number MSG with ephemeral scalar K, which must be
        invertible modulo PRIME-1.  Never reuse K: that leaks the secret.

        >>> ElGamalKeyPair(23, 5, 6).sign(7, k=3)
        Signature(r=10, s=19)
        """
        prime = self.pub.prime
        order = prime - 1
        k = ephemeral(k, order, nonces)
        rrr = modpow(self.pub.gen, k, prime)
        sss = modinverse(k, order) * (msg - self.secret * rrr) % order
        return Signature(rrr, sss)


####################################################################
###                                                   EC ELGAMAL ###


class EcElGamalPublicKey:
    """Elliptic-curve ElGamal public parameters: a CURVE, a BASE point on it,
    and the public point PUB = x*BASE for some secret x."""

    def __init__(self, curve: CurveParams, base: Point, pub: Point):
        self.group = CurveGroup(curve)
        self.base = base
        self.pub = pub

    @property
    def curve(self) -> CurveParams:
        return self.group.curve

    def __eq__(self, other):
        return (
            isinstance(other, EcElGamalPublicKey)
            and self.curve == other.curve
            and self.base == other.base
            and self.pub == other.pub
        )

    def __repr__(self):
        return f"EcElGamalPublicKey({self.curve}, {self.base}, {self.pub})"

    def encrypt(
        self,
        msg: Point,
        k: t.Optional[int] = None,
        *,
        nonces: t.Optional[NonceSource] = None,
    ) -> Ciphertext:
        """Encrypt the message point MSG as (k*BASE, MSG + k*PUB).

        >>> kp = EcElGamalKeyPair(CurveParams(17, 2, 2), Point(5, 1), 3)
        >>> kp.pub.encrypt(Point(6, 3), k=2)
        Ciphertext(c1=Point(x=6, y=3), c2=Point(x=13, y=7))
        """
        grp = self.group
        k = ephemeral(k, self.curve.prime, nonces)
        return Ciphertext(
            grp.power(self.base, k), grp(msg, grp.power(self.pub, k))
        )


class EcElGamalKeyPair:
    """An elliptic-curve ElGamal secret scalar with its public key.

    >>> kp = EcElGamalKeyPair(CurveParams(17, 2, 2), Point(5, 1), 3)
    >>> kp.pub.pub
    Point(x=10, y=6)
    >>> kp.decrypt(Ciphertext(Point(6, 3), Point(13, 7)))
    Point(x=6, y=3)
    """

    def __init__(self, curve: CurveParams, base: Point, secret: int):
        self.secret = secret
        pub = ec_multiply(base, secret, curve)
        self.pub = EcElGamalPublicKey(curve, base, pub)

    def __eq__(self, other):
        return (
            isinstance(other, EcElGamalKeyPair)
            and self.pub == other.pub
            and self.secret == other.secret
        )

    def __repr__(self):
        pub = self.pub
        return f"EcElGamalKeyPair({pub.curve}, {pub.base}, {self.secret})"

    @classmethod
    def generate(
        cls,
        curve: CurveParams,
        base: t.Optional[Point] = None,
        randbelow=secrets.randbelow,
    ):
        """Generate a key pair on CURVE with a secret in [1, PRIME-1].  Unless
        BASE is given, use the first point found by find_base_point."""
        if base is None:
            base = find_base_point(curve)
        return cls(curve, base, 1 + randbelow(curve.prime - 1))

    def decrypt(self, ctxt: Ciphertext) -> Point:
        "Recover the message point: C2 minus x*C1."
        grp = self.pub.group
        c1, c2 = ctxt
        return grp(c2, grp.inverse(grp.power(c1, self.secret)))


####################################################################
###                                       COMMAND LINE INTERFACE ###


def integer(text: str) -> int:
    "Parse an integer written in any base Python accepts, such as 0x1f."
    return int(text, base=0)


def format_point(point: Point) -> str:
    "Render POINT for display."
    if point.is_identity:
        return "infinity"
    return f"({point.x}, {point.y})"


def run_group(args):
    "Find a primitive root modulo a prime."
    if getattr(args, "prime", None) is None:
        prime, gen = generate_group(args.bits, args.hint)
    else:
        prime, gen = args.prime, find_generator(args.prime, args.hint)
    print(f"prime: {prime}")
    print(f"factors of prime-1: {prime_factors(prime - 1)}")
    print(f"generator: {gen}")
    return 0


def add_group_args(cmdp):
    "Configure argument parser for group command."
    argp = cmdp.add_parser(
        "group", help=run_group.__doc__, description=run_group.__doc__
    )
    argp.set_defaults(func=run_group)
    argp.add_argument(
        "prime",
        metavar="PRIME",
        type=integer,
        nargs="?",
        help="prime modulus, default is a random prime of BITS bits",
    )
    argp.add_argument(
        "--bits",
        type=integer,
        default=24,
        help="size of random prime, default is %(default)s",
    )
    add_hint_args(argp)


def add_hint_args(argp):
    "Configure the generator search hint for an argument parser."
    argp.add_argument(
        "--hint",
        type=integer,
        default=DEFAULT_GENERATOR_HINT,
        metavar="G",
        help="search for a generator from G, default is %(default)s",
    )


def run_rsa(args):
    "Generate textbook RSA keys, then encrypt and sign a message."
    keys = RsaKeyPair(args.p, args.q, exp=getattr(args, "exp", None))
    print(f"public key: n={keys.pub.mod} e={keys.pub.exp}")
    print(f"secret key: d={keys.secret_exp}")
    if getattr(args, "message", None) is None:
        return 0
    cipher = keys.pub.encrypt(args.message)
    print(f"ciphertext: {cipher}")
    print(f"decrypted: {keys.decrypt(cipher)}")
    signature = keys.sign(args.message)
    print(f"signature: {signature}")
    print(f"signature valid: {keys.pub.verify(args.message, signature)}")
    brute = getattr(args, "brute", 0)
    if brute:
        found = keys.decrypting_exponents(cipher, args.message, brute)
        if len(found) < brute:
            logging.info("Only %d decrypting exponents below n", len(found))
        print(f"decrypting exponents: {found}")
    return 0


def add_rsa_args(cmdp):
    "Configure argument parser for rsa command."
    argp = cmdp.add_parser(
        "rsa", help=run_rsa.__doc__, description=run_rsa.__doc__
    )
    argp.set_defaults(func=run_rsa)
    argp.add_argument("p", metavar="P", type=integer, help="first prime")
    argp.add_argument("q", metavar="Q", type=integer, help="second prime")
    argp.add_argument(
        "message",
        metavar="M",
        type=integer,
        nargs="?",
        help="message as a number less than P*Q",
    )
    argp.add_argument(
        "--exp",
        "-e",
        type=integer,
        help="public exponent, default is the smallest valid odd number",
    )
    argp.add_argument(
        "--brute",
        type=integer,
        default=0,
        metavar="N",
        help="brute-force N exponents that decrypt the ciphertext",
    )


def nonce_source(args) -> NonceSource:
    "Scan for nonces from --nonce if given, otherwise choose them randomly."
    if getattr(args, "nonce", None) is None:
        return RandomNonces()
    return ScanNonces(args.nonce, gap=1)


def run_elgamal(args):
    "Encrypt, decrypt, sign and verify a message with ElGamal."
    gen = getattr(args, "gen", None)
    if gen is None:
        gen = find_generator(args.prime, getattr(args, "hint", 2))
    keys = ElGamalKeyPair(args.prime, gen, args.secret)
    nonces = nonce_source(args)
    print(f"public key: p={keys.pub.prime} g={keys.pub.gen} h={keys.pub.pub}")
    ctxt = keys.pub.encrypt(args.message, nonces=nonces)
    print(f"ciphertext: c1={ctxt.c1} c2={ctxt.c2}")
    print(f"decrypted: {keys.decrypt(ctxt)}")
    signature = keys.sign(args.message, nonces=nonces)
    print(f"signature: r={signature.r} s={signature.s}")
    print(f"signature valid: {keys.pub.verify(args.message, signature)}")
    return 0


def add_elgamal_args(cmdp):
    "Configure argument parser for elgamal command."
    argp = cmdp.add_parser(
        "elgamal", help=run_elgamal.__doc__, description=run_elgamal.__doc__
    )
    argp.set_defaults(func=run_elgamal)
    argp.add_argument("prime", metavar="PRIME", type=integer, help="modulus")
    argp.add_argument(
        "secret", metavar="X", type=integer, help="private key in [1, PRIME-2]"
    )
    argp.add_argument(
        "message", metavar="M", type=integer, help="message less than PRIME"
    )
    argp.add_argument(
        "--gen", "-g", type=integer, help="generator, default is to search"
    )
    add_hint_args(argp)
    add_nonce_args(argp)


def add_nonce_args(argp):
    "Configure nonce selection for an argument parser."
    argp.add_argument(
        "--nonce",
        "-k",
        type=integer,
        metavar="K",
        help="scan for ephemeral scalars from K (predictable, demo only)",
    )


def run_ecc(args):
    "Encrypt and decrypt a message point with elliptic-curve ElGamal."
    curve = CurveParams(args.prime, args.a, args.b)
    base = find_base_point(curve)
    keys = EcElGamalKeyPair(curve, base, args.secret)
    msg = Point(args.mx, args.my)
    if not on_curve(msg, curve):
        raise ValueError(f"message point {format_point(msg)} is not on curve")
    print(f"base point: {format_point(base)}")
    print(f"public key: {format_point(keys.pub.pub)}")
    ctxt = keys.pub.encrypt(msg, nonces=nonce_source(args))
    print(f"ciphertext: {format_point(ctxt.c1)} {format_point(ctxt.c2)}")
    print(f"decrypted: {format_point(keys.decrypt(ctxt))}")
    return 0


def add_ecc_args(cmdp):
    "Configure argument parser for ecc command."
    argp = cmdp.add_parser(
        "ecc", help=run_ecc.__doc__, description=run_ecc.__doc__
    )
    argp.set_defaults(func=run_ecc)
    argp.add_argument("prime", metavar="P", type=integer, help="field prime")
    argp.add_argument("a", metavar="A", type=integer, help="coefficient of x")
    argp.add_argument("b", metavar="B", type=integer, help="constant term")
    argp.add_argument("secret", metavar="X", type=integer, help="private key")
    argp.add_argument("mx", metavar="MX", type=integer, help="message x")
    argp.add_argument("my", metavar="MY", type=integer, help="message y")
    add_nonce_args(argp)


def run_tests(args):
    "Run unit tests and doc tests."
    try:
        import test_modcrypt
    except ImportError as err:
        logging.error("Tests need the source tree and test extras: %s", err)
        return 1
    program = unittest.main(
        module=test_modcrypt,
        argv=[args.prog],
        verbosity=args.verbose + 1,
        failfast=args.failfast,
        exit=False,
    )
    return 0 if program.result.wasSuccessful() else 1


def parse_args(*args, **kwargs):
    "Parse arguments for command-line interface."
    argp = argparse.ArgumentParser(
        prog="modcrypt",
        description="Textbook RSA, ElGamal and elliptic-curve ElGamal demos.",
        epilog="Please do not rely on these experiments for actual privacy!",
    )
    argp.set_defaults(func=run_tests, prog=argp.prog, failfast=False)
    argp.add_argument(
        "--verbose",
        "-v",
        action="count",
        default=0,
        help="enable informative (-v) or debugging (-vv) messages",
    )
    cmdp = argp.add_subparsers()
    add_group_args(cmdp)
    add_rsa_args(cmdp)
    add_elgamal_args(cmdp)
    add_ecc_args(cmdp)

    argp_test = cmdp.add_parser(
        "test", help=run_tests.__doc__, description=run_tests.__doc__
    )
    argp_test.add_argument(
        "--failfast",
        "-f",
        action="store_true",
        help="stop the test run on the first failure",
    )
    return argp.parse_args(*args, **kwargs)


def setup_logging(verbose: int = 0, **_kwargs):
    "Configure log level based on verbose argument."
    logging.basicConfig()
    logging.root.name = ""
    if verbose >= 2:
        logging.root.setLevel(logging.DEBUG)
        logging.debug("Logging enabled")
    elif verbose == 1:
        logging.root.setLevel(logging.INFO)
        logging.info("Logging enabled")


@contextmanager
def capture_output(name="stdout"):
    "Capture standard output to a string buffer."
    old = getattr(sys, name)
    buf = io.StringIO()
    try:
        setattr(sys, name, buf)
        yield buf
    finally:
        setattr(sys, name, old)


####################################################################
###                                                   MAIN BLOCK ###


def main(argv=None) -> int:
    "Run the command line interface, returning the exit status."
    cli_args = parse_args(argv)
    setup_logging(**vars(cli_args))
    logging.debug(cli_args)
    try:
        return cli_args.func(cli_args)
    except (DomainError, ValueError) as err:
        logging.error("%s: %s", type(err).__name__, err)
        return 1


if __name__ == "__main__":
    sys.exit(main())  # pragma: no cover
