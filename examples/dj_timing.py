from djlib.dj import DamgardJurik, DJPlaintext
from djlib.keys import DJKeyGenParams

import time

if __name__ == "__main__":
    repeats = 20

    dj = DamgardJurik()
    t0 = time.perf_counter()
    pub, priv = dj.generate_key(DJKeyGenParams(1024, 40))
    print("Key generation (1024 bits):\t%2.2fs" % (time.perf_counter() - t0))
    dj.set_key(pub, priv)

    n = pub.modulus
    for s in [1, 2, 3]:
        dj.set_length_parameter(s)
        ms = [(n ** s).random() for _ in range(repeats)]

        t0 = time.perf_counter()
        cs = [dj.encrypt(DJPlaintext(m)) for m in ms]
        t_enc = (time.perf_counter() - t0) / repeats

        t0 = time.perf_counter()
        for c in cs:
            dj.decrypt(c, s=s)
        t_dec = (time.perf_counter() - t0) / repeats

        t0 = time.perf_counter()
        for c in cs:
            dj.add(c, c)
        t_add = (time.perf_counter() - t0) / repeats

        print("s=%d\tenc %2.1f/s\tdec %2.1f/s\tadd %2.1f/s" % (
            s, 1.0 / t_enc, 1.0 / t_dec, 1.0 / t_add))
