# The djlib version
VERSION = '0.1.0'


__all__ = ["arith", "dj", "errors", "keys"]

def run_tests():
    # These are only needed in case we test
    import pytest
    import os.path
    import glob

    # List all djlib files in the directory
    djlib_dir = os.path.dirname(os.path.realpath(__file__))
    pyfiles = glob.glob(os.path.join(djlib_dir, '*.py'))

    # Run the test suite
    print("Directory: %s" % pyfiles)
    res = pytest.main(["-v", "-x"] + pyfiles)
    print("Result: %s" % res)

    # Return exit result
    return res
