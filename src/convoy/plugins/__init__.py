"""Default compilers, analyzers, linkers and minifiers.

Every plugin is an async callable ``plugin(asset, context)`` where ``context``
is the owning :class:`~convoy.packager.AssetPackager`. Stateless plugins are
plain functions; configurable ones are classes with a ready-made default
instance:

    >>> from convoy.plugins import CoffeeScriptCompiler
    >>> bare_coffee = CoffeeScriptCompiler(bare=True)
"""

from convoy.plugins.analyzers import commonjs_analyzer, generic_analyzer
from convoy.plugins.base import Analyzer, Compiler, Linker, Minifier, Processor
from convoy.plugins.compilers import CoffeeScriptCompiler, coffeescript_compiler, generic_compiler
from convoy.plugins.linkers import commonjs_linker, simple_merge_linker
from convoy.plugins.minifiers import (
    UglifyCSSMinifier,
    UglifyMinifier,
    uglify_css_minifier,
    uglify_minifier,
)

__all__ = [
    "Analyzer",
    "CoffeeScriptCompiler",
    "Compiler",
    "Linker",
    "Minifier",
    "Processor",
    "UglifyCSSMinifier",
    "UglifyMinifier",
    "coffeescript_compiler",
    "commonjs_analyzer",
    "commonjs_linker",
    "generic_analyzer",
    "generic_compiler",
    "simple_merge_linker",
    "uglify_css_minifier",
    "uglify_minifier",
]
