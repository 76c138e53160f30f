"""naviq: natural-language query resolution and routing over venue graphs."""
