"""
Sym-PHE Test Suite

Unit tests for the symmetric PHE schemes, their mask ledgers and the
public-key baselines. Run with `python -m pytest tests` or
`python -m unittest discover tests`.
"""

# Version of the test suite
__version__ = '1.0.0'

# Test categories available
TEST_CATEGORIES = [
    'modular_arithmetic',
    'mask_generator',
    'mask_ledger',
    'sym_ahe',
    'sym_mhe',
    'key_store',
    'asym_phe',
    'strawman',
    'phe_config',
    'evaluate'
]
