# FILE: solver.py
# LOCATION: mathpro/solver.py

"""Local step-by-step solver built on SymPy.

Backs the ``sympy`` generation capability used for development and tests. It
handles three kinds of text problems:

  - arithmetic / symbolic expressions, which are evaluated or simplified;
  - algebraic equations in one unknown;
  - ordinary differential equations in y(x), with integrating-factor steps for
    first-order linear equations and ``sympy.dsolve`` for the rest.

Every solver returns ``{"solution_summary": str, "steps": [step, ...]}`` where
a step is ``{"rule_name", "result", "explanation"}``, or ``{"error": str}``.
"""

import logging
import re

import sympy
from sympy.parsing.sympy_parser import (
    convert_xor,
    implicit_multiplication_application,
    parse_expr,
    standard_transformations,
)

logger = logging.getLogger(__name__)

_TRANSFORMATIONS = standard_transformations + (implicit_multiplication_application, convert_xor)

MAX_PROBLEM_LENGTH = 500
MAX_EXPONENT = 1000

_LEADING_VERBS = re.compile(
    r"^\s*(solve|evaluate|simplify|compute|calculate|find|what\s+is)\b\s*:?\s*",
    re.IGNORECASE,
)
_ODE_MARKERS = re.compile(r"y'|d\d?y/dx\d?")

# Problem text is evaluated by SymPy's parser, so only plain math notation gets through.
_ALLOWED_TEXT = re.compile(r"[A-Za-z0-9\s+\-*/^()=.']*\Z")
_STRAY_DOT = re.compile(r"(?<!\d)\.|\.(?!\d)")
_STRAY_QUOTE = re.compile(r"(?<![y'])'")

_SAFE_NAMES = {
    'sin': sympy.sin, 'cos': sympy.cos, 'tan': sympy.tan,
    'exp': sympy.exp, 'log': sympy.log, 'ln': sympy.log, 'sqrt': sympy.sqrt,
    'sinh': sympy.sinh, 'cosh': sympy.cosh, 'tanh': sympy.tanh,
    'pi': sympy.pi, 'E': sympy.E,
}

# Everything the parser's generated code may refer to. No builtins.
_PARSER_GLOBALS = {
    "__builtins__": {},
    "Symbol": sympy.Symbol, "Integer": sympy.Integer, "Float": sympy.Float,
    "Rational": sympy.Rational, "Function": sympy.Function, "Derivative": sympy.Derivative,
    "Add": sympy.Add, "Mul": sympy.Mul, "Pow": sympy.Pow, "Eq": sympy.Eq, "I": sympy.I,
    **_SAFE_NAMES,
}


# --- 1. A Simple and Direct Parser ---
def normalize_expression(expr: str) -> str:
    """Prepare a problem string for SymPy.

    Keeps normalization conservative: maps common unicode characters,
    removes surrounding whitespace but preserves token boundaries so
    later regex-based substitutions work reliably.
    """
    expr = expr.strip()
    char_map = {
        '²': '^2', '³': '^3', '’': "'", '√': 'sqrt',
        '×': '*', '·': '*', '÷': '/', '−': '-', 'π': 'pi',
    }
    for k, v in char_map.items():
        expr = expr.replace(k, v)
    expr = _LEADING_VERBS.sub('', expr)
    return expr.rstrip(' ?.')


def check_problem_text(text: str) -> None:
    """Raise ``ValueError`` unless ``text`` is short, plain math notation."""
    if len(text) > MAX_PROBLEM_LENGTH:
        raise ValueError(f"Problem is longer than {MAX_PROBLEM_LENGTH} characters.")
    if not _ALLOWED_TEXT.match(text) or _STRAY_DOT.search(text) or _STRAY_QUOTE.search(text):
        raise ValueError("Problem contains characters that are not math notation.")


def _check_size(expr) -> None:
    """Reject towers of powers and exponents too large to evaluate."""
    for node in sympy.preorder_traversal(expr):
        if not isinstance(node, sympy.Pow):
            continue
        exponent = node.exp
        for inner in sympy.preorder_traversal(exponent):
            if isinstance(inner, sympy.Pow) and inner.exp != -1:
                raise ValueError("Nested powers are not supported.")
        if exponent.is_number and abs(sympy.N(exponent)) > MAX_EXPONENT:
            raise ValueError(f"Exponents larger than {MAX_EXPONENT} are not supported.")


def _parse(text: str):
    expr = parse_expr(
        text,
        local_dict=dict(_SAFE_NAMES),
        global_dict=dict(_PARSER_GLOBALS),
        transformations=_TRANSFORMATIONS,
        evaluate=False,
    )
    _check_size(expr)
    return expr


def _parse_ode_side(text: str, local_dict):
    # Size-check the unevaluated form first; evaluating a tower is what hangs.
    _check_size(parse_expr(text, local_dict=dict(local_dict), global_dict=dict(_PARSER_GLOBALS), evaluate=False))
    return parse_expr(text, local_dict=dict(local_dict), global_dict=dict(_PARSER_GLOBALS))


# --- 2. Expressions ---
def _evaluate_expression(expr_str: str):
    expr = _parse(expr_str)
    steps = [{
        "rule_name": "Read the Expression",
        "result": sympy.latex(expr),
        "explanation": "Write the problem as a single expression.",
    }]

    value = sympy.simplify(expr)
    if expr.free_symbols:
        steps.append({
            "rule_name": "Simplify",
            "result": sympy.latex(value),
            "explanation": "Combine like terms and cancel common factors.",
        })
    else:
        steps.append({
            "rule_name": "Evaluate",
            "result": f"{sympy.latex(expr)} = {sympy.latex(value)}",
            "explanation": "Apply the order of operations.",
        })
        if value.is_number and not value.is_Integer:
            steps.append({
                "rule_name": "Decimal Value",
                "result": str(sympy.N(value, 10)),
                "explanation": "Approximate the exact value.",
            })
    return {"solution_summary": sympy.latex(value), "steps": steps}


# --- 3. Algebraic Equations ---
def _solve_algebraic(lhs_str: str, rhs_str: str):
    lhs, rhs = _parse(lhs_str), _parse(rhs_str)
    equation = sympy.Eq(lhs, rhs, evaluate=False)
    steps = [{
        "rule_name": "Initial Equation",
        "result": sympy.latex(equation),
        "explanation": "",
    }]

    symbols = sorted(equation.free_symbols, key=lambda s: s.name)
    if not symbols:
        holds = sympy.simplify(lhs - rhs) == 0
        steps.append({
            "rule_name": "Check Equality",
            "result": sympy.latex(sympy.simplify(lhs)) + (" = " if holds else r" \neq ") + sympy.latex(sympy.simplify(rhs)),
            "explanation": "Both sides are numbers, so evaluate them and compare.",
        })
        return {"solution_summary": "True" if holds else "False", "steps": steps}

    var = sympy.Symbol('x') if sympy.Symbol('x') in symbols else symbols[0]
    rearranged = sympy.expand(lhs - rhs)
    steps.append({
        "rule_name": "Move All Terms to One Side",
        "result": sympy.latex(sympy.Eq(rearranged, 0)),
        "explanation": "Subtract the right-hand side from both sides.",
    })

    factored = sympy.factor(rearranged)
    if factored != rearranged:
        steps.append({
            "rule_name": "Factor",
            "result": sympy.latex(sympy.Eq(factored, 0)),
            "explanation": "A product is zero when one of its factors is zero.",
        })

    solutions = sympy.solve(lhs - rhs, var)
    if not solutions:
        steps.append({
            "rule_name": "No Solution",
            "result": r"\varnothing",
            "explanation": f"No value of {var} satisfies the equation.",
        })
        return {"solution_summary": "No solution", "steps": steps}

    summary = ", ".join(sympy.latex(sympy.Eq(var, s)) for s in solutions)
    steps.append({
        "rule_name": f"Solve for {var}",
        "result": summary,
        "explanation": "Isolate the unknown.",
    })
    return {"solution_summary": summary, "steps": steps}


# --- 4. The First-Order Linear ODE Solver ---
def _solve_linear_step_by_step(eq, y, x):
    """Generates steps for first-order linear equations."""
    dydx = y.diff(x)
    rearranged = (eq.lhs - eq.rhs).expand()
    coeff_dydx = rearranged.coeff(dydx, 1)
    if coeff_dydx != 0:
        rearranged = rearranged / coeff_dydx
    p_x = rearranged.coeff(y, 1)
    q_x = -(rearranged - dydx - p_x * y)
    steps = [{
        "rule_name": "Identify P(x) and Q(x)",
        "result": f"P(x) = {sympy.latex(p_x)}, Q(x) = {sympy.latex(q_x)}",
        "explanation": "The equation is a first-order linear ODE: y' + P(x)y = Q(x)."
    }]
    integrating_factor = sympy.exp(sympy.integrate(p_x, x))
    steps.append({
        "rule_name": "Calculate Integrating Factor (I.F.)",
        "result": rf"I(x) = e^{{\int P(x) dx}} = {sympy.latex(integrating_factor)}",
        "explanation": "The integrating factor is e raised to the integral of P(x)."
    })
    integral_of_rhs = sympy.integrate(integrating_factor * q_x, x)
    C = sympy.Symbol('C')
    final_solution = sympy.Eq(y, (integral_of_rhs + C) / integrating_factor)
    steps.append({
        "rule_name": "Integrate and Solve for y",
        "result": sympy.latex(sympy.Eq(integrating_factor * y, integral_of_rhs + C)),
        "explanation": "The solution is found by the formula y * I(x) = ∫ Q(x) * I(x) dx."
    })
    steps.append({
        "rule_name": "Final Solution",
        "result": sympy.latex(final_solution),
        "explanation": "Isolating y gives the general solution."
    })
    return {"solution_summary": sympy.latex(final_solution), "steps": steps}


def _is_linear(eq, y, x):
    """Helper to check for first-order linearity y' + P(x) y = Q(x)."""
    try:
        dydx = y.diff(x)
        # Reject if higher derivatives are present
        if not eq.has(dydx) or any(eq.has(y.diff(x, i)) for i in range(2, 5)):
            return False

        rearranged = eq.lhs - eq.rhs
        collected = sympy.collect(rearranged, [y, dydx])
        coeff_dydx = collected.coeff(dydx, 1)
        if coeff_dydx == 0:
            return False

        normalized_collected = (collected / coeff_dydx).expand()
        p_x = normalized_collected.coeff(y, 1)
        q_x_negative = normalized_collected.subs([(y, 0), (dydx, 0)])

        return not p_x.has(y) and not q_x_negative.has(y)
    except Exception:
        return False


def _prime_to_derivative(m):
    n = len(m.group(1))
    if n == 1:
        return 'Derivative(y(x), x)'
    return f'Derivative(y(x), (x, {n}))'


def solve_differential_equation(expression_str: str):
    """Classifies and solves a differential equation in y(x), providing steps.

    Prime-notation derivatives (y', y'', y''') and Leibniz forms are rewritten
    into ``Derivative`` calls and plain ``y`` into ``y(x)`` before parsing.
    """
    x = sympy.Symbol('x')
    y_func = sympy.Function('y')
    y = y_func(x)

    parsed_str = normalize_expression(expression_str)
    check_problem_text(parsed_str)
    if parsed_str.count('=') != 1:
        return {"error": "Input must contain exactly one '='."}

    # Leibniz forms first so the prime rewrite does not clash with them
    parsed_str = parsed_str.replace('d3y/dx3', 'Derivative(y(x), (x, 3))')
    parsed_str = parsed_str.replace('d2y/dx2', 'Derivative(y(x), (x, 2))')
    parsed_str = parsed_str.replace('dy/dx', 'Derivative(y(x), x)')
    parsed_str = re.sub(r"y('+)", _prime_to_derivative, parsed_str)
    # Explicit multiplication (2y -> 2*y), then y -> y(x) where not already called
    parsed_str = re.sub(r'(\d)\s*(?=[A-Za-z(])', r'\1*', parsed_str)
    parsed_str = re.sub(r'(?<![A-Za-z0-9_])y(?!\s*\()', 'y(x)', parsed_str)
    parsed_str = parsed_str.replace('^', '**')

    lhs_str, rhs_str = parsed_str.split('=', 1)
    locals_map = dict(_SAFE_NAMES, y=y_func, x=x)
    equation = sympy.Eq(_parse_ode_side(lhs_str, locals_map), _parse_ode_side(rhs_str, locals_map))

    if _is_linear(equation, y, x):
        logger.debug("Classifier: first-order linear equation")
        return _solve_linear_step_by_step(equation, y, x)

    logger.debug("Classifier: no specific type matched, using dsolve")
    solution = sympy.dsolve(equation, y)
    if not solution:
        raise ValueError("SymPy returned no solution.")

    return {
        "solution_summary": sympy.latex(solution),
        "steps": [
            {"rule_name": "Initial Equation", "result": sympy.latex(equation), "explanation": ""},
            {"rule_name": "General Solution", "result": sympy.latex(solution),
             "explanation": "Solved with SymPy's general ODE solver."},
        ],
    }


# --- 5. The Main Entry Point ---
def solve_problem(problem: str):
    """Classify a text problem and solve it step by step."""
    try:
        if _ODE_MARKERS.search(problem):
            return solve_differential_equation(problem)

        normalized = normalize_expression(problem)
        if not normalized:
            return {"error": "No problem found in the input."}
        check_problem_text(normalized)

        sides = normalized.count('=')
        if sides == 0:
            return _evaluate_expression(normalized)
        if sides == 1:
            lhs, rhs = normalized.split('=', 1)
            return _solve_algebraic(lhs, rhs)
        return {"error": "Input must contain at most one '='."}
    except Exception as e:
        logger.info("Local solver could not process %r: %s", problem, e)
        return {"error": f"Failed to process problem: {e}"}


def render_solution(result) -> str:
    """Render a solver result as numbered plain-text steps."""
    if "error" in result:
        raise ValueError(result["error"])

    lines = []
    for number, step in enumerate(result["steps"], start=1):
        lines.append(f"Step {number}: {step['rule_name']}")
        lines.append(f"    {step['result']}")
        if step.get("explanation"):
            lines.append(f"    {step['explanation']}")
    lines.append("")
    lines.append(f"Final answer: {result['solution_summary']}")
    return "\n".join(lines)
