"""Query language core: term model, parser, resolver, inference, solver, compiler."""
