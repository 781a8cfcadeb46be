"""Pure domain layer: lifecycle rules, commands, stage definitions, reporting."""
