"""Example domains built on eventfold: counter, todo and shop."""
