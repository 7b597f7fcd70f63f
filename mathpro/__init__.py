"""
MathPRO AI: solve math problems step by step with a generative model.

The gateway (``mathpro.main``) verifies the caller, builds the prompt and calls
the model; the client side (``mathpro.client``, ``mathpro.orchestrator``)
sends authenticated requests with retries and drives the progress display.
"""

__version__ = "1.0.0"
