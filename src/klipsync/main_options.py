"""Click option helpers for mode selection."""
import click


def _check_mutual_exclusion(name: str, not_required_if: list[str], opts: dict) -> None:
    """Raise UsageError if mutually exclusive options are both present.

    Args:
        name: Name of the current option.
        not_required_if: List of option names that are mutually exclusive.
        opts: Dictionary of parsed options.

    Raises:
        click.UsageError: If both options are present.
    """
    for other in not_required_if:
        if opts.get(other):
            msg = f"Options --{name} and --{other} are mutually exclusive"
            raise click.UsageError(msg)


class MutuallyExclusiveOption(click.Option):
    """Click option that enforces mutual exclusivity with another option."""

    def __init__(self, *args, **kwargs):
        """Initialize with not_required_if parameter for mutual exclusion."""
        self.not_required_if = kwargs.pop("not_required_if", [])
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        """Check mutual exclusion before the value is stored."""
        if opts.get(self.name):
            _check_mutual_exclusion(self.name.replace("_", "-"), self.not_required_if, opts)
        return super().handle_parse_result(ctx, opts, args)


class ModeOption(click.Option):
    """Click option that is only meaningful together with a mode flag.

    Example:
        @click.option("--email", cls=ModeOption, mode="client")
    """

    def __init__(self, *args, **kwargs):
        self.mode = kwargs.pop("mode")
        super().__init__(*args, **kwargs)

    def handle_parse_result(self, ctx, opts, args):
        """Reject the option when its mode flag is absent."""
        if self.name in opts and not opts.get(self.mode):
            name = self.name.replace("_", "-")
            raise click.UsageError(f"Option --{name} requires --{self.mode}")
        return super().handle_parse_result(ctx, opts, args)
