""" The Damgard-Jurik additively homomorphic encryption scheme.

A plaintext m < N^s is encrypted as c = (1 + N)^m * r^(N^s) mod N^(s+1) for
a random r in Z_N^*. Multiplying ciphertexts adds the plaintexts, raising a
ciphertext to a constant multiplies its plaintext by that constant.

Example:
    >>> dj = DamgardJurik()
    >>> pub, priv = dj.generate_key(DJKeyGenParams(256, 20))
    >>> dj.set_key(pub, priv)
    >>> dj.set_length_parameter(1)
    >>> c1 = dj.encrypt(DJPlaintext(42))
    >>> c2 = dj.encrypt(DJPlaintext(58))
    >>> dj.decrypt(dj.add(c1, c2)).value
    100

"""

import logging
import threading

import msgpack

from petlib import pack
from petlib.bn import Bn

from .arith import to_bn, gcd, is_unit, random_unit, SeededRandom
from .errors import DJTypeError, DomainError, InvalidKeyError, KeyNotSetError, \
    SizeMismatchError, UnsupportedOperation
from .keys import ALGORITHM, DJKeyGenParams, DJPrivateKey, DJPublicKey, \
    generate_key, public_key_from_record, public_key_to_record, \
    private_key_from_record, private_key_to_record

import pytest

logger = logging.getLogger(__name__)

CIPHERTEXT_CODE = 21


class DJPlaintext(object):
    """ A plaintext, a non-negative big number. """

    __slots__ = ["_value"]

    def __init__(self, value):
        value = to_bn(value)
        if value < 0:
            raise DomainError("Plaintexts have to be non-negative.")
        self._value = value

    @property
    def value(self):
        return self._value

    @staticmethod
    def from_bytes(data):
        """The plaintext holding the big-endian unsigned number in data."""
        return DJPlaintext(Bn.from_binary(data))

    def to_bytes(self):
        return self._value.binary()

    def __eq__(self, other):
        return isinstance(other, DJPlaintext) and self._value == other._value

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(("DJPlaintext", self._value))

    def __repr__(self):
        return "DJPlaintext(%s)" % repr(self._value)


class DJCiphertext(object):
    """ A ciphertext, a big number in Z_{N^(s+1)}^*. It does not record s. """

    __slots__ = ["_value"]

    def __init__(self, value):
        value = to_bn(value)
        if value <= 0:
            raise DomainError("Ciphertexts have to be positive.")
        self._value = value

    @property
    def value(self):
        return self._value

    def to_record(self):
        return {"algorithm": ALGORITHM, "cipher": self._value}

    def __eq__(self, other):
        return isinstance(other, DJCiphertext) and self._value == other._value

    def __ne__(self, other):
        return not self.__eq__(other)

    def __hash__(self):
        return hash(("DJCiphertext", self._value))

    def __repr__(self):
        return "DJCiphertext(bits=%d)" % self._value.num_bits()


pack.register_coders(DJCiphertext, CIPHERTEXT_CODE,
                     lambda c: c.value.binary(),
                     lambda data: DJCiphertext(Bn.from_binary(data)))


def reconstruct_ciphertext(record):
    """Rebuilds a ciphertext from the output of ``DJCiphertext.to_record``."""
    if not isinstance(record, dict) or record.get("algorithm") != ALGORITHM \
            or "cipher" not in record:
        raise DJTypeError("Not a %s ciphertext record." % ALGORITHM)
    return DJCiphertext(record["cipher"])


def min_length(n, m):
    """The smallest s >= 1 such that m < n^s."""
    s, ns = 1, n
    while m >= ns:
        ns = ns * n
        s += 1
    return s


def extract_plaintext(a, n, s):
    """Recovers i from a = (1 + n)^i mod n^(s+1), for i < n^s.

    The base n digits of i are found one at a time: round j knows i mod n^(j-1)
    and uses the binomial expansion of (1 + n)^i mod n^(j+1) to find
    i mod n^j.
    """
    i = Bn(0)
    for j in range(1, s + 1):
        nj = n ** j
        t1 = ((a % (nj * n)) - 1) // n
        t2 = i
        kfac = Bn(1)
        for k in range(2, j + 1):
            i = (i - 1) % nj
            t2 = t2.mod_mul(i, nj)
            kfac = kfac * k
            term = t2.mod_mul(n ** (k - 1), nj).mod_mul(kfac.mod_inverse(nj), nj)
            t1 = t1.mod_sub(term, nj)
        i = t1
    return i


class DamgardJurik(object):
    """ The Damgard-Jurik encryption scheme.

    Encryption and the homomorphic operations need the public key, decryption
    also needs the private key. Keys are set with ``set_key``; once set, all
    operations may be called concurrently from several threads.

    Operations that need randomness take an ``rng`` randomness provider and
    default to the OpenSSL generator.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._public_key = None
        self._private_key = None
        self._length = None

    # ---------- Keys ------------

    def set_key(self, public_key, private_key=None):
        """Sets the key pair. Without a private key only encryption and the
        homomorphic operations are available."""
        if not isinstance(public_key, DJPublicKey):
            raise InvalidKeyError("The public key has to be a DJPublicKey.")
        if private_key is not None:
            if not isinstance(private_key, DJPrivateKey):
                raise InvalidKeyError("The private key has to be a DJPrivateKey.")
            if private_key.modulus != public_key.modulus:
                raise InvalidKeyError("The private key does not match the public key.")

        with self._lock:
            self._public_key = public_key
            self._private_key = private_key
        logger.debug("Key set: %d bit modulus, private key %s",
                     public_key.modulus.num_bits(), private_key is not None)

    def is_key_set(self):
        return self._public_key is not None

    def get_public_key(self):
        """The public key. Use ``is_key_set`` to check whether one was set."""
        return self._snapshot()[0]

    def _snapshot(self):
        # Every operation works on one consistent view of the engine state
        with self._lock:
            pub, priv, length = self._public_key, self._private_key, self._length
        if pub is None:
            raise KeyNotSetError("No public key has been set.")
        return pub, priv, length

    def generate_key(self, params=None, rng=None):
        """Generates a key pair, see ``djlib.keys.generate_key``. The keys
        are returned but not set."""
        return generate_key(params, rng)

    def reconstruct_public_key(self, record):
        return public_key_from_record(record)

    def reconstruct_private_key(self, record):
        return private_key_from_record(record)

    def reconstruct_ciphertext(self, record):
        return reconstruct_ciphertext(record)

    # ---------- Plaintexts and lengths ------------

    def algorithm_name(self):
        return ALGORITHM

    def has_max_plaintext_length(self):
        """Damgard-Jurik grows s to fit any plaintext, so there is no maximum."""
        return False

    def max_plaintext_length(self):
        raise UnsupportedOperation("Damgard-Jurik encryption can get any plaintext length.")

    def generate_plaintext(self, data):
        if not isinstance(data, bytes):
            raise DJTypeError("Plaintexts are generated from bytes.")
        return DJPlaintext.from_bytes(data)

    def generate_bytes_from_plaintext(self, plaintext):
        _check_plaintext(plaintext)
        return plaintext.to_bytes()

    def set_length_parameter(self, s):
        """Fixes the length parameter s for all following operations.

        ``None`` lets encryption pick the smallest s fitting each plaintext,
        and the other operations infer s from the ciphertexts."""
        if s is not None:
            _check_length(s)
        with self._lock:
            self._length = s

    def length_parameter(self, m):
        """The length s used to encrypt the number m."""
        pub, _, length = self._snapshot()
        if length is not None:
            return length
        return min_length(pub.modulus, to_bn(m))

    def ciphertext_length(self, cipher):
        """The length s of a ciphertext, inferred from its size in bits.
        See ``infer_length`` for when this is reliable."""
        _check_ciphertext(cipher)
        pub, _, _ = self._snapshot()
        return infer_length(pub.modulus, cipher.value)

    # ---------- Encryption ------------

    def encrypt(self, plaintext, r=None, rng=None):
        """Encrypts a plaintext, optionally with a given random value r in Z_N^*.

        Supply r when it is needed after encryption, e.g. in a sigma protocol.
        Never use the same r twice.
        """
        pub, _, length = self._snapshot()
        _check_plaintext(plaintext)

        n, m = pub.modulus, plaintext.value
        s = length if length is not None else min_length(n, m)
        ns = n ** s
        if m >= ns:
            raise DomainError("The plaintext has to be in Z_{N^%d}." % s)

        if r is None:
            r = random_unit(n, rng)
        else:
            r = _check_randomizer(r, n)

        ns1 = ns * n
        c = pow(n + 1, m, ns1).mod_mul(pow(r, ns, ns1), ns1)
        return DJCiphertext(c)

    def decrypt(self, cipher, s=None):
        """Decrypts a ciphertext encrypted with length s. When s is omitted the
        fixed length parameter is used, or else s is inferred from the size of
        the ciphertext.

        There is no integrity check: a value that is not a valid encryption
        decrypts to some number.
        """
        pub, priv, length = self._snapshot()
        if priv is None:
            raise KeyNotSetError("No private key has been set.")
        _check_ciphertext(cipher)

        n = pub.modulus
        s = _pick_length(s, length)
        if s is None:
            s = infer_length(n, cipher.value)

        ns1 = n ** (s + 1)
        a = pow(cipher.value, priv.d_for(s), ns1)
        return DJPlaintext(extract_plaintext(a, n, s))

    # ---------- Homomorphic operations ------------
    #
    # The length s of the operands is the one given, else the fixed length
    # parameter, else it is inferred from their size.

    def add(self, cipher1, cipher2, r=None, s=None):
        """Returns an encryption of m1 + m2 mod N^s given encryptions of m1 and m2.

        With a random value r the result is also re-randomized.
        """
        pub, _, length = self._snapshot()
        _check_ciphertext(cipher1)
        _check_ciphertext(cipher2)

        n = pub.modulus
        s = _pick_length(s, length)
        if s is None:
            s = infer_length(n, cipher1.value)
            if infer_length(n, cipher2.value) != s:
                raise SizeMismatchError("Sizes of ciphertexts do not match.")
        else:
            ns1 = n ** (s + 1)
            if cipher1.value >= ns1 or cipher2.value >= ns1:
                raise SizeMismatchError("Sizes of ciphertexts do not match the length %d." % s)

        ns1 = _check_operand(cipher1, n, s)
        _check_operand(cipher2, n, s)

        c = cipher1.value.mod_mul(cipher2.value, ns1)
        if r is not None:
            r = _check_randomizer(r, n)
            c = c.mod_mul(pow(r, n ** s, ns1), ns1)
        return DJCiphertext(c)

    def mult_by_const(self, cipher, const, r=None, s=None):
        """Returns an encryption of const * m mod N^s given an encryption of m,
        for a constant in Z_N."""
        pub, _, length = self._snapshot()
        n = pub.modulus
        s, ns1 = _operand(cipher, n, _pick_length(s, length))
        const = to_bn(const)
        if not (0 <= const < n):
            raise DomainError("The constant has to be in Z_N.")

        c = pow(cipher.value, const, ns1)
        if r is not None:
            r = _check_randomizer(r, n)
            c = c.mod_mul(pow(r, n ** s, ns1), ns1)
        return DJCiphertext(c)

    def rerandomize(self, cipher, r=None, rng=None, s=None):
        """Returns a fresh looking encryption of the same plaintext."""
        pub, _, length = self._snapshot()
        n = pub.modulus
        s, ns1 = _operand(cipher, n, _pick_length(s, length))
        if r is None:
            r = random_unit(n, rng)
        else:
            r = _check_randomizer(r, n)

        c = cipher.value.mod_mul(pow(r, n ** s, ns1), ns1)
        return DJCiphertext(c)


def infer_length(n, c):
    """Infers the length s of a ciphertext value c from its size in bits.

    This is only a fallback for when s is not known. It never overestimates
    s, but a ciphertext with fewer than s * bits(N) + 1 bits is taken for a
    shorter one. That is negligible for realistic moduli, yet certain for
    ciphertexts such as 1, the encryption of 0 with r = 1.
    """
    s = (c.num_bits() - 1) // n.num_bits()
    if s < 1:
        raise DomainError("The ciphertext is too short for this key.")
    return s


def _pick_length(s, length):
    if s is None:
        return length
    _check_length(s)
    return s


def _check_operand(cipher, n, s):
    ns1 = n ** (s + 1)
    if not (cipher.value < ns1 and gcd(cipher.value, n) == 1):
        raise DomainError("The ciphertext has to be in Z_{N^%d}^*." % (s + 1))
    return ns1


def _operand(cipher, n, s):
    _check_ciphertext(cipher)
    if s is None:
        s = infer_length(n, cipher.value)
    return s, _check_operand(cipher, n, s)


def _check_plaintext(plaintext):
    if not isinstance(plaintext, DJPlaintext):
        raise DJTypeError("The plaintext has to be a DJPlaintext.")


def _check_ciphertext(cipher):
    if not isinstance(cipher, DJCiphertext):
        raise DJTypeError("The ciphertext has to be a DJCiphertext.")


def _check_length(s):
    if isinstance(s, bool) or not isinstance(s, int):
        raise DJTypeError("The length parameter has to be an integer.")
    if s < 1:
        raise DomainError("The length parameter has to be at least 1.")


def _check_randomizer(r, n):
    r = to_bn(r)
    if not is_unit(r, n):
        raise DomainError("The random value has to be in Z_N^*.")
    return r


# ---------- Tests ------------


def _setup(bits=256, s=None):
    dj = DamgardJurik()
    pub, priv = dj.generate_key(DJKeyGenParams(bits, 20))
    dj.set_key(pub, priv)
    dj.set_length_parameter(s)
    return dj, pub, priv


def test_scenario():
    dj, pub, priv = _setup(256, 1)

    c = dj.encrypt(DJPlaintext(42))
    assert dj.decrypt(c).value == 42

    c100 = dj.add(dj.encrypt(DJPlaintext(42)), dj.encrypt(DJPlaintext(58)))
    assert dj.decrypt(c100) == DJPlaintext(100)

    c50 = dj.mult_by_const(dj.encrypt(DJPlaintext(10)), 5)
    assert dj.decrypt(c50).value == 50


def test_extract_plaintext():
    _, pub, _ = _setup(128)
    n = pub.modulus
    rng = SeededRandom(5)
    for s in [1, 2, 3, 4]:
        ns1 = n ** (s + 1)
        for m in [Bn(0), Bn(1), n ** s - 1, rng.randbelow(n ** s)]:
            a = pow(n + 1, m, ns1)
            assert extract_plaintext(a, n, s) == m


def test_roundtrip():
    dj, pub, _ = _setup(256)
    n = pub.modulus
    rng = SeededRandom(11)
    for s in [1, 2, 3]:
        dj.set_length_parameter(s)
        ns = n ** s
        for m in [Bn(0), Bn(1), ns - 1, rng.randbelow(ns), rng.randbelow(ns)]:
            c = dj.encrypt(DJPlaintext(m))
            assert dj.ciphertext_length(c) == s
            assert dj.decrypt(c).value == m
            assert dj.decrypt(c, s=s).value == m


def test_randomizer_independence():
    dj, pub, _ = _setup(256, 1)
    n = pub.modulus
    r1 = random_unit(n)
    r2 = random_unit(n)

    c1 = dj.encrypt(DJPlaintext(7), r1)
    c2 = dj.encrypt(DJPlaintext(7), r2)
    assert c1 != c2
    assert dj.decrypt(c1) == dj.decrypt(c2) == DJPlaintext(7)

    assert dj.encrypt(DJPlaintext(7), r1) == c1
    assert dj.encrypt(DJPlaintext(7), int(r1)) == c1


def test_seeded_encryption():
    dj, _, _ = _setup(256, 2)
    c1 = dj.encrypt(DJPlaintext(1234), rng=SeededRandom(9))
    c2 = dj.encrypt(DJPlaintext(1234), rng=SeededRandom(9))
    assert c1 == c2
    assert dj.decrypt(c1).value == 1234


def test_variable_length():
    dj, pub, _ = _setup(256)
    n = pub.modulus

    assert dj.length_parameter(0) == 1
    assert dj.length_parameter(n - 1) == 1
    assert dj.length_parameter(n) == 2
    assert dj.length_parameter(n ** 3) == 4

    m = n * n + 5
    c = dj.encrypt(DJPlaintext(m))
    assert dj.ciphertext_length(c) == 3
    assert dj.decrypt(c).value == m

    msg = b"Hello World! " * 10
    pt = dj.generate_plaintext(msg)
    c = dj.encrypt(pt)
    assert dj.generate_bytes_from_plaintext(dj.decrypt(c)) == msg


def test_add():
    dj, pub, _ = _setup(256)
    n = pub.modulus
    rng = SeededRandom(3)
    for s in [1, 2]:
        dj.set_length_parameter(s)
        ns = n ** s
        m1, m2 = rng.randbelow(ns), rng.randbelow(ns)
        c = dj.add(dj.encrypt(DJPlaintext(m1)), dj.encrypt(DJPlaintext(m2)))
        assert dj.decrypt(c).value == (m1 + m2) % ns

        # Wraps around N^s
        c = dj.add(dj.encrypt(DJPlaintext(ns - 1)), dj.encrypt(DJPlaintext(5)))
        assert dj.decrypt(c).value == 4


def test_add_rerandomizes():
    dj, pub, _ = _setup(256, 1)
    c1, c2 = dj.encrypt(DJPlaintext(20)), dj.encrypt(DJPlaintext(22))

    plain = dj.add(c1, c2)
    fresh = dj.add(c1, c2, random_unit(pub.modulus))
    assert plain != fresh
    assert dj.decrypt(plain) == dj.decrypt(fresh) == DJPlaintext(42)

    # The operands are left untouched
    assert dj.decrypt(c1).value == 20


def test_mult_by_const():
    dj, pub, _ = _setup(256)
    n = pub.modulus
    rng = SeededRandom(4)
    for s in [1, 2]:
        dj.set_length_parameter(s)
        ns = n ** s
        m, k = rng.randbelow(ns), rng.randbelow(n)
        c = dj.mult_by_const(dj.encrypt(DJPlaintext(m)), k)
        assert dj.decrypt(c).value == (m * k) % ns

        c = dj.mult_by_const(dj.encrypt(DJPlaintext(m)), k, random_unit(n))
        assert dj.decrypt(c).value == (m * k) % ns

    dj.set_length_parameter(1)
    c = dj.mult_by_const(dj.encrypt(DJPlaintext(9)), 0)
    assert c.value == 1
    assert dj.decrypt(c, s=1).value == 0


def test_rerandomize():
    dj, _, _ = _setup(256, 2)
    c = dj.encrypt(DJPlaintext(99))
    c2 = dj.rerandomize(c)
    assert c2 != c
    assert dj.decrypt(c2).value == 99

    c3 = dj.rerandomize(c, rng=SeededRandom(1))
    assert c3 == dj.rerandomize(c, rng=SeededRandom(1))
    assert dj.decrypt(c3).value == 99


def test_encryption_of_zero():
    dj, _, _ = _setup(256, 1)
    zero = dj.encrypt(DJPlaintext(0), 1)
    assert zero.value == 1

    c = dj.add(dj.encrypt(DJPlaintext(5)), zero)
    assert dj.decrypt(c).value == 5
    assert dj.decrypt(dj.add(zero, zero)).value == 0

    c = dj.rerandomize(zero)
    assert c != zero
    assert dj.decrypt(c).value == 0

    c = dj.mult_by_const(dj.encrypt(DJPlaintext(9)), 0)
    assert c == zero
    c = dj.add(dj.encrypt(DJPlaintext(5)), c)
    assert dj.decrypt(c).value == 5

    dj.set_length_parameter(2)
    c = dj.add(dj.encrypt(DJPlaintext(7)), dj.encrypt(DJPlaintext(0), 1))
    assert dj.decrypt(c).value == 7


def test_explicit_length():
    dj, pub, _ = _setup(256, 1)
    n = pub.modulus
    zero = dj.encrypt(DJPlaintext(0), 1)
    c = dj.encrypt(DJPlaintext(8))
    dj.set_length_parameter(None)

    # Inferred from its size, 1 looks too short for any length
    for op in [lambda: dj.decrypt(zero),
               lambda: dj.add(c, zero),
               lambda: dj.mult_by_const(zero, 3),
               lambda: dj.rerandomize(zero)]:
        with pytest.raises(Exception) as excinfo:
            op()
        assert 'too short' in str(excinfo.value)

    assert dj.decrypt(zero, s=1).value == 0
    assert dj.decrypt(dj.add(c, zero, s=1)).value == 8
    assert dj.decrypt(dj.mult_by_const(zero, 3, s=1), s=1).value == 0
    assert dj.decrypt(dj.rerandomize(zero, s=1), s=1).value == 0

    # An explicit length wins over the fixed one
    dj.set_length_parameter(2)
    c2 = dj.encrypt(DJPlaintext(n + 5))
    assert dj.decrypt(c2).value == n + 5
    assert dj.decrypt(c, s=1).value == 8
    assert dj.decrypt(dj.mult_by_const(c, 3, s=1), s=1).value == 24

    with pytest.raises(Exception) as excinfo:
        dj.mult_by_const(DJCiphertext(n ** 2 + 1), 2, s=1)
    assert 'Z_{N^2}^*' in str(excinfo.value)

    for s in [0, -1]:
        with pytest.raises(DomainError):
            dj.add(c, c, s=s)
        with pytest.raises(DomainError):
            dj.rerandomize(c, s=s)
    with pytest.raises(DJTypeError):
        dj.mult_by_const(c, 2, s=1.5)


def test_domain_errors():
    dj, pub, priv = _setup(256, 1)
    n = pub.modulus

    with pytest.raises(Exception) as excinfo:
        dj.encrypt(DJPlaintext(n))
    assert isinstance(excinfo.value, DomainError)
    assert 'Z_{N^1}' in str(excinfo.value)

    for r in [0, n, priv.p, -1]:
        with pytest.raises(DomainError):
            dj.encrypt(DJPlaintext(1), r)

    c = dj.encrypt(DJPlaintext(1))
    for k in [n, -1]:
        with pytest.raises(DomainError):
            dj.mult_by_const(c, k)

    with pytest.raises(DomainError):
        dj.rerandomize(c, priv.q)

    with pytest.raises(DomainError):
        dj.add(c, DJCiphertext(n * 3))

    with pytest.raises(SizeMismatchError):
        dj.add(c, DJCiphertext(n ** 2 + 1))

    dj.set_length_parameter(None)
    with pytest.raises(Exception) as excinfo:
        dj.add(c, DJCiphertext(n - 2))
    assert 'too short' in str(excinfo.value)
    dj.set_length_parameter(1)

    with pytest.raises(DomainError):
        DJPlaintext(-1)

    with pytest.raises(DomainError):
        dj.set_length_parameter(0)


def test_size_mismatch():
    dj, _, _ = _setup(256, 1)
    c1 = dj.encrypt(DJPlaintext(1))
    dj.set_length_parameter(2)
    c2 = dj.encrypt(DJPlaintext(1))
    dj.set_length_parameter(None)

    with pytest.raises(Exception) as excinfo:
        dj.add(c1, c2)
    assert isinstance(excinfo.value, SizeMismatchError)
    assert 'do not match' in str(excinfo.value)

    with pytest.raises(SizeMismatchError):
        dj.add(c1, c2, s=1)

    # Read with length 2, c1 only encrypts 1 modulo N
    c = dj.add(c1, c2, s=2)
    assert dj.decrypt(c, s=2).value % dj.get_public_key().modulus == 2


def test_key_state():
    dj = DamgardJurik()
    assert not dj.is_key_set()

    with pytest.raises(KeyNotSetError):
        dj.get_public_key()
    with pytest.raises(KeyNotSetError):
        dj.encrypt(DJPlaintext(1))

    pub, priv = dj.generate_key(DJKeyGenParams(256, 20))
    dj.set_key(pub)
    assert dj.is_key_set()
    assert dj.get_public_key() == pub

    c = dj.encrypt(DJPlaintext(5))
    c = dj.add(c, c)
    with pytest.raises(Exception) as excinfo:
        dj.decrypt(c)
    assert 'private key' in str(excinfo.value)

    dj.set_key(pub, priv)
    assert dj.decrypt(c).value == 10


def test_type_errors():
    dj, pub, priv = _setup(256, 1)
    c = dj.encrypt(DJPlaintext(1))

    with pytest.raises(DJTypeError):
        dj.encrypt(42)
    with pytest.raises(DJTypeError):
        dj.decrypt(42)
    with pytest.raises(DJTypeError):
        dj.add(c, 42)
    with pytest.raises(DJTypeError):
        dj.mult_by_const(c, "2")
    with pytest.raises(DJTypeError):
        dj.generate_plaintext(u"text")
    with pytest.raises(DJTypeError):
        dj.decrypt(c, s=1.0)

    with pytest.raises(InvalidKeyError):
        dj.set_key("key")
    with pytest.raises(InvalidKeyError):
        dj.set_key(pub, pub)

    _, other_priv = dj.generate_key(DJKeyGenParams(256, 20))
    with pytest.raises(Exception) as excinfo:
        dj.set_key(pub, other_priv)
    assert 'does not match' in str(excinfo.value)


def test_scheme_info():
    dj = DamgardJurik()
    assert dj.algorithm_name() == "DamgardJurik"
    assert not dj.has_max_plaintext_length()
    with pytest.raises(UnsupportedOperation):
        dj.max_plaintext_length()
    with pytest.raises(UnsupportedOperation):
        dj.generate_key()

    pt = dj.generate_plaintext(b"\x01\x02\x03")
    assert pt.value == 66051
    assert dj.generate_bytes_from_plaintext(pt) == b"\x01\x02\x03"


def test_reconstruct():
    dj, pub, priv = _setup(256, 1)
    c = dj.encrypt(DJPlaintext(77))

    c2 = dj.reconstruct_ciphertext(c.to_record())
    assert c2 == c
    assert dj.reconstruct_public_key(public_key_to_record(pub)) == pub
    assert dj.reconstruct_private_key(private_key_to_record(priv)) == priv

    with pytest.raises(DJTypeError):
        dj.reconstruct_ciphertext({"algorithm": "RSA", "cipher": c.value})

    other = DamgardJurik()
    other.set_key(dj.reconstruct_public_key(public_key_to_record(pub)),
                  dj.reconstruct_private_key(private_key_to_record(priv)))
    assert other.decrypt(c2).value == 77


def test_pack_ciphertext():
    dj, pub, _ = _setup(256, 1)
    c = dj.encrypt(DJPlaintext(3))
    packed = msgpack.packb([pub, c], default=pack.default, use_bin_type=True)
    pub2, c2 = msgpack.unpackb(packed, ext_hook=pack.ext_hook, raw=False)
    assert pub2 == pub
    assert c2 == c
    assert dj.decrypt(c2).value == 3


def test_multithread():
    dj, _, _ = _setup(256, 1)
    errors = []

    def worker(x):
        try:
            for _ in range(10):
                c = dj.add(dj.encrypt(DJPlaintext(x)), dj.encrypt(DJPlaintext(1)))
                assert dj.decrypt(c).value == x + 1
        except Exception as e:  # pylint: disable=broad-except
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(x,)) for x in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []


def test_multithread_key_swap():
    dj = DamgardJurik()
    keys = [dj.generate_key(DJKeyGenParams(256, 20)) for _ in range(2)]
    dj.set_key(*keys[0])
    dj.set_length_parameter(1)
    errors = []
    results = []

    def worker(x):
        try:
            for _ in range(10):
                results.append((x, dj.encrypt(DJPlaintext(x))))
        except Exception as e:  # pylint: disable=broad-except
            errors.append(e)

    def swapper():
        for i in range(50):
            dj.set_key(*keys[i % 2])

    threads = [threading.Thread(target=worker, args=(x,)) for x in range(1, 9)]
    threads.append(threading.Thread(target=swapper))
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(results) == 80

    engines = []
    for pub, priv in keys:
        engine = DamgardJurik()
        engine.set_key(pub, priv)
        engines.append(engine)

    # Every ciphertext is a complete encryption under one of the keys
    for x, c in results:
        assert any(e.decrypt(c, s=1).value == x for e in engines)
