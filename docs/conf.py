# Sphinx configuration for the adf-runtime API reference

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'src'))

project = 'ADF Runtime'
copyright = '2024, Trickl'
author = 'Trickl'
release = '0.1.0'

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

exclude_patterns = ['_build']
html_theme = 'sphinx_rtd_theme'

# Pydantic models document their fields; skip the generated validators
autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'exclude-members': 'model_config,model_fields,model_computed_fields',
}
autodoc_mock_imports = ['llama_cpp']
typehints_fully_qualified = False

napoleon_numpy_docstring = False

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'pydantic': ('https://docs.pydantic.dev/latest', None),
}
