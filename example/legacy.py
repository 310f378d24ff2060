# ProcedureSyntax  Replaces deprecated procedure syntax with explicit ': Unit ='.
# RemoveUnused     Removes unused imports and terms that are reported by the compiler.


compat = True
