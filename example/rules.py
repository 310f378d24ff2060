# DisableSyntax            Reports an error for disabled features such as var or XML literals.
# ExplicitResultTypes      Inserts type annotations for inferred public members.
# LeakingImplicitClassVal  Adds 'private' to val parameters of implicit value classes.
# NoAutoTupling            Inserts explicit tuples for adapted argument lists of multiple arguments.
# NoValInForComprehension  Removes deprecated val inside for-comprehension binders.
# OrganizeImports          Organizes import statements.
# ProcedureSyntax          Replaces deprecated procedure syntax with explicit ': Unit ='.
# RedundantSyntax          Removes redundant syntax such as `final` modifiers on an object.
# RemoveUnused             Removes unused imports and terms that are reported by the compiler.


# Set to True for tools that only take a list of rules.
compat = False
