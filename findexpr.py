#!/usr/bin/env python

# Copyright (C) 2015  JINMEI Tatuya
#
# Permission to use, copy, modify, and distribute this software for any
# purpose with or without fee is hereby granted, provided that the above
# copyright notice and this permission notice appear in all copies.
#
# THE SOFTWARE IS PROVIDED "AS IS" AND THE AUTHOR DISCLAIMS ALL WARRANTIES WITH
# REGARD TO THIS SOFTWARE INCLUDING ALL IMPLIED WARRANTIES OF MERCHANTABILITY
# AND FITNESS.  IN NO EVENT SHALL THE AUTHOR BE LIABLE FOR ANY SPECIAL, DIRECT,
# INDIRECT, OR CONSEQUENTIAL DAMAGES OR ANY DAMAGES WHATSOEVER RESULTING FROM
# LOSS OF USE, DATA OR PROFITS, WHETHER IN AN ACTION OF CONTRACT, NEGLIGENCE
# OR OTHER TORTIOUS ACTION, ARISING OUT OF OR IN CONNECTION WITH THE USE OR
# PERFORMANCE OF THIS SOFTWARE.

# Search for arithmetic expressions over a fixed sequence of numbers (by
# default 1, 2, ..., 9 in this order) that evaluate to a given target, like
# the "10958" problem.  Every binary tree shape is generated, the numbers are
# placed on its leaves from left to right, and every combination of binary
# operators is tried on its internal nodes.

from optparse import OptionParser
from multiprocessing import Process, Queue, Pipe
from multiprocessing.connection import wait
import math
import sys
import time

INF = float('inf')
NAN = float('nan')

# Results within this distance of the target are reported.  Floating point
# errors accumulate over the chain of operations, so exact comparison would
# miss many expected answers.
TOLERANCE = 0.11

# Precedence used for values (and for internal nodes with no operator yet);
# higher than any real operator so they never get parenthesized.
VALUE_PRECEDENCE = 9

# Workers pass collected lines to the master in batches of this size.
BATCH_SIZE = 10000

# An operator usable in expression trees.  'infix' is the symbol used to
# render it in infix notation; if it's None the operator is rendered as a
# function call, e.g. 'max(1,2)'.  'fn' takes the list of 'arity' argument
# values and returns the result.
class Operator(object):
    def __init__(self, name, infix, arity, precedence, fn):
        self.name = name
        self.infix = infix
        self.arity = arity
        self.precedence = precedence
        self.fn = fn

    def evaluate(self, args):
        return self.fn(args)

    def __repr__(self):
        return 'Operator(%r)' % (self.name,)

# An ordered, read-only set of operators.  The search takes one of these
# explicitly, so a different set of operators can be used without touching
# the default one.
class OperatorCatalog(object):
    def __init__(self, operators):
        self.__operators = tuple(operators)

    def __len__(self):
        return len(self.__operators)

    def __iter__(self):
        return iter(self.__operators)

    def __getitem__(self, i):
        return self.__operators[i]

    def lookup(self, name):
        for op in self.__operators:
            if op.name == name:
                return op
        raise KeyError(name)

    # Operators that can be placed on a binary tree node, in catalog order.
    def binary(self):
        return tuple([op for op in self.__operators if op.arity == 2])

# Return the smallest power of ten greater than x, i.e., what to multiply
# the left operand of '||' with so x can be appended.  0 still takes one
# digit, so 5 || 0 is 50.  The number of iterations is capped to avoid a
# very long loop for huge (or infinite) values.
def tenfactor(x):
    if x == 0:
        return 10.0
    f = 1.0
    i = 0
    while i < 20 and x >= f:
        f *= 10
        i += 1
    return f

def _is_odd_integer(x):
    return math.isfinite(x) and x == math.floor(x) and math.fmod(x, 2) != 0

# Division and exponentiation follow IEEE 754: instead of raising exceptions
# they produce infinity or NaN, which are then simply not a match.
def _div(args):
    a, b = args
    try:
        return a / b
    except ZeroDivisionError:
        if a == 0 or math.isnan(a):
            return NAN
        return math.copysign(INF, a) * math.copysign(1.0, b)

def _pow(args):
    a, b = args
    try:
        return math.pow(a, b)
    except OverflowError:
        if a < 0 and _is_odd_integer(b):
            return -INF
        return INF
    except ValueError:
        if a == 0:              # zero to a negative power
            return math.copysign(INF, a) if _is_odd_integer(b) else INF
        return NAN              # negative base to a non-integer power

def _add(args):
    return args[0] + args[1]

def _sub(args):
    return args[0] - args[1]

def _mul(args):
    return args[0] * args[1]

def _cat(args):
    return args[0] * tenfactor(args[1]) + args[1]

def _neg(args):
    return -args[0]

# Build the standard set of operators.  Note that 'neg' is never chosen by
# the search itself, which only assigns binary operators.
def make_default_catalog():
    return OperatorCatalog([Operator('add', '+', 2, 1, _add),
                            Operator('sub', '-', 2, 1, _sub),
                            Operator('mul', '*', 2, 2, _mul),
                            Operator('div', '/', 2, 3, _div),
                            Operator('pow', '^', 2, 4, _pow),
                            Operator('cat', '||', 2, 5, _cat),
                            Operator('neg', '-', 1, 2, _neg)])

DEFAULT_CATALOG = make_default_catalog()

# Kinds of expression tree nodes.  Every function walking a tree checks the
# 'kind' of each node and rejects anything it doesn't know.
LEAF = 'leaf'
EXPR = 'expr'

# A leaf of the expression tree, holding a number.  'value' is None until
# numbers are bound to the tree.
class Value(object):
    kind = LEAF

    def __init__(self, value=None):
        self.value = value

# An internal node of the expression tree: an operator and its (ordered)
# arguments.  'op' is None until operators are assigned to the tree.
class Expr(object):
    kind = EXPR

    def __init__(self, *args):
        self.op = None
        self.args = list(args)

def _unknown_kind(node):
    return ValueError('unknown expression node kind: %r' % (node.kind,))

# A tree shape, exclusively owning its tree.  We keep the leaves and the
# internal nodes in depth-first, left-to-right order (an internal node comes
# before its arguments) so numbers and operators can be set by index instead
# of walking the tree every time.  'slots' are the internal nodes that take
# a binary operator.
class Shape(object):
    def __init__(self, root):
        self.root = root
        self.leaves = []
        self.exprs = []
        nodes = [root]
        while nodes:
            node = nodes.pop()
            if node.kind == LEAF:
                self.leaves.append(node)
            elif node.kind == EXPR:
                self.exprs.append(node)
                nodes.extend(reversed(node.args))
            else:
                raise _unknown_kind(node)
        self.slots = [e for e in self.exprs if len(e.args) == 2]

    def leaf_count(self):
        return len(self.leaves)

    def internal_count(self):
        return len(self.exprs)

    def __str__(self):
        return render(self)

# Generate all binary tree shapes with 'nleaves' leaves, as nested tuples:
# () is a leaf and (left, right) an internal node.  For each way of
# splitting the leaves between the left (nleaves - i) and right (i) subtree,
# we combine every left shape with every right shape.  Mirrored shapes are
# different shapes here, since the numbers are placed in a fixed order and
# most operators are not commutative.  The number of shapes is the Catalan
# number C(nleaves - 1).
def enumerate_topologies(nleaves):
    if nleaves < 1:
        return
    if nleaves == 1:
        yield ()
        return
    for i in range(1, nleaves):
        for left in enumerate_topologies(nleaves - i):
            for right in enumerate_topologies(i):
                yield (left, right)

def build_node(topology):
    if not topology:
        return Value()
    return Expr(*[build_node(t) for t in topology])

def build_shape(topology):
    return Shape(build_node(topology))

# Same as enumerate_topologies(), but each shape is given as a newly built
# Shape, so it's safe to keep it after getting the next one.
def enumerate_shapes(nleaves):
    for topology in enumerate_topologies(nleaves):
        yield build_shape(topology)

# Place the numbers on the leaves of 'shape' from left to right.  The caller
# must give exactly as many numbers as the shape has leaves.
def bind_operands(shape, values):
    values = list(values)
    if len(values) != len(shape.leaves):
        raise ValueError('%d operands given for a shape with %d leaves' %
                         (len(values), len(shape.leaves)))
    for leaf, value in zip(shape.leaves, values):
        leaf.value = float(value)

# Assign operators to the binary nodes of 'shape' (in the order of
# shape.slots) as specified by 'index'.  We use 'index' as a number in base
# len(operators), each digit choosing an operator for one node, lowest digit
# first.  So iterating over range(len(operators) ** len(shape.slots)) covers
# every combination of operators exactly once.
def assign_operators(shape, index, operators):
    nops = len(operators)
    nslots = len(shape.slots)
    if nops == 0 and nslots > 0:
        raise ValueError('no operators to assign')
    if index < 0 or index >= nops ** nslots:
        raise ValueError('operator index %d out of range for %d operators '
                         'and %d nodes' % (index, nops, nslots))
    # check everything before touching the shape
    chosen = []
    for node in shape.slots:
        op = operators[index % nops]
        if op.arity != len(node.args):
            raise ValueError("operator '%s' takes %d arguments, not %d" %
                             (op.name, op.arity, len(node.args)))
        chosen.append(op)
        index //= nops
    for node, op in zip(shape.slots, chosen):
        node.op = op

def eval_node(node):
    if node.kind == LEAF:
        if node.value is None:
            raise ValueError('no value bound to leaf')
        return node.value
    elif node.kind == EXPR:
        if node.op is None:
            raise ValueError('no operator assigned to expression')
        return node.op.evaluate([eval_node(arg) for arg in node.args])
    raise _unknown_kind(node)

# 'shape' can also be a bare node (e.g., a subtree of a shape).
def evaluate(shape):
    if isinstance(shape, Shape):
        return eval_node(shape.root)
    return eval_node(shape)

def precedence(node):
    if node.kind == LEAF or node.op is None:
        return VALUE_PRECEDENCE
    return node.op.precedence

# Render an argument of 'op', adding parentheses if and only if its top-level
# operator binds weaker than 'op'.
def _arg2str(op, arg):
    s = node2str(arg)
    if op.precedence > precedence(arg):
        return '(' + s + ')'
    return s

# Convert an expression tree into string in the infix notation.  Nodes
# without an operator yet are rendered with a placeholder, e.g. '(1#2)'.
# The result is meant for human readers; in particular, the same precedence
# on both sides is not parenthesized, so 1-(2-3) is shown as '1-2-3'.
def node2str(node):
    if node.kind == LEAF:
        return '_' if node.value is None else '%g' % node.value
    if node.kind != EXPR:
        raise _unknown_kind(node)

    op = node.op
    if op is None:
        args = [node2str(arg) for arg in node.args]
        if len(args) == 2:
            return '(%s#%s)' % (args[0], args[1])
        elif len(args) == 1:
            return '(-%s)' % (args[0],)
        return 'op(%s)' % ','.join(args)

    if op.infix and len(node.args) == 2:
        return '%s%s%s' % (_arg2str(op, node.args[0]), op.infix,
                           _arg2str(op, node.args[1]))
    elif op.infix and len(node.args) == 1:
        return op.infix + _arg2str(op, node.args[0])
    # operators without infix notation, or with more than 2 arguments
    return '%s(%s)' % (op.name, ','.join([node2str(a) for a in node.args]))

def render(shape):
    if isinstance(shape, Shape):
        return node2str(shape.root)
    return node2str(shape)

def catalan(n):
    return math.comb(2 * n, n) // (n + 1)

# The total number of expressions to be evaluated for 'leaf_count' numbers
# and 'operator_count' binary operators: each of the C(leaf_count - 1) shapes
# has leaf_count - 1 nodes to put an operator on.
def count_combinations(leaf_count, operator_count):
    if leaf_count < 1:
        return 0
    return catalan(leaf_count - 1) * operator_count ** (leaf_count - 1)

# Whether 'result' should be reported.  With no target everything is.  NaN
# and infinity never get close enough to a target.
def is_match(result, target, tolerance=TOLERANCE):
    if target is None:
        return True
    return abs(result - target) <= tolerance

def format_result(result, shape):
    return '%g=%s' % (result, render(shape))

# Try all combinations of 'operators' on 'shape' with 'nums' on its leaves,
# and generate (result, shape) for each match.  The same shape is updated
# in place for every combination, so it has to be used (e.g., rendered)
# before getting the next one.
def sweep(shape, nums, operators, target=None, tolerance=TOLERANCE):
    bind_operands(shape, nums)
    for i in range(len(operators) ** len(shape.slots)):
        assign_operators(shape, i, operators)
        result = evaluate(shape)
        if is_match(result, target, tolerance):
            yield result, shape

# Search all expressions for 'nums'.  Stopping the iteration stops the
# search.
def search(nums, target=None, tolerance=TOLERANCE, catalog=None):
    operators = (DEFAULT_CATALOG if catalog is None else catalog).binary()
    for shape in enumerate_shapes(len(nums)):
        for match in sweep(shape, nums, operators, target, tolerance):
            yield match

# A helper to measure the time spent on each shape in microseconds.
class Timer(object):
    def __init__(self):
        self.t0 = time.time()

    def lap(self):
        t1 = time.time()
        d = int((t1 - self.t0) * 1000000)
        self.t0 = t1
        return d

def print_shape_diag(timer, shape):
    print('=========%d usec   %s' % (timer.lap(), render(shape)),
          file=sys.stderr)

# The loop for worker processes.  Each task is a tree shape (see
# enumerate_topologies()); None means there are no more tasks.
def run_worker(conn, nums, operators, target, tolerance, verbose, tasks):
    timer = Timer()
    lines = []
    while True:
        topology = tasks.get()
        if topology is None:
            # Pass the remaining lines to the master and exit.
            conn.send(lines)
            conn.send(None)
            break

        shape = build_shape(topology)
        if verbose:
            print_shape_diag(timer, shape)
        for result, _ in sweep(shape, nums, operators, target, tolerance):
            lines.append(format_result(result, shape))
            if len(lines) >= BATCH_SIZE:
                conn.send(lines)
                lines = []

def _solve_serial(nums, operators, target, tolerance, limit, verbose, out):
    timer = Timer()
    nlines = 0
    if limit is not None and limit <= 0:
        return nlines
    for shape in enumerate_shapes(len(nums)):
        if verbose:
            print_shape_diag(timer, shape)
        for result, _ in sweep(shape, nums, operators, target, tolerance):
            print(format_result(result, shape), file=out)
            nlines += 1
            if limit is not None and nlines >= limit:
                return nlines
    return nlines

# Top-level code for the master process.  With more than one worker, the
# shapes are distributed to worker processes; the lines are then printed in
# the order they are received, which can differ from run to run.  Returns
# the number of printed lines.
def solve(nums, target=None, tolerance=TOLERANCE, num_workers=1, limit=None,
          verbose=False, catalog=None, out=None):
    if out is None:
        out = sys.stdout
    operators = (DEFAULT_CATALOG if catalog is None else catalog).binary()
    if num_workers <= 1:
        return _solve_serial(nums, operators, target, tolerance, limit,
                             verbose, out)

    tasks = Queue()
    workers = []
    for i in range(0, num_workers):
        parent_conn, child_conn = Pipe(duplex=False)
        worker = Process(target=run_worker,
                         args=(child_conn, nums, operators, target, tolerance,
                               verbose, tasks))
        worker.start()
        workers.append((worker, parent_conn))

    for topology in enumerate_topologies(len(nums)):
        tasks.put(topology)
    # Tell workers all tasks have been passed.
    for _ in workers:
        tasks.put(None)

    # Receive lines until all workers are done (sending None), or the limit
    # is reached.
    nlines = 0
    conns = [w[1] for w in workers]
    while conns and (limit is None or nlines < limit):
        for c in wait(conns):
            worker_data = c.recv()
            if worker_data is None:
                conns.remove(c)
                continue
            for line in worker_data:
                if limit is not None and nlines >= limit:
                    break
                print(line, file=out)
                nlines += 1

    if conns:
        # Stopped early: tasks left in the queue will never be read, so
        # don't wait for them to be flushed at exit.
        tasks.cancel_join_thread()
        tasks.close()
    for w in workers:
        if conns:
            w[0].terminate()
        w[0].join()
    return nlines

def main(argv=None):
    parser = OptionParser(usage='usage: %prog [options] [target]')
    parser.add_option("-r", "--reverse", dest='reverse',
                      action="store_true", default=False,
                      help="use the numbers in descending order")
    parser.add_option("-m", "--max_num", dest='max_num',
                      action="store", type="int", default=9,
                      help="max number of the sequence [default: %default]")
    parser.add_option("-d", "--digit", dest='digit',
                      action="store", type="int", default=None,
                      help="use COUNT times DIGIT instead of 1..MAX_NUM")
    parser.add_option("-n", "--count", dest='count',
                      action="store", type="int", default=None,
                      help="see --digit")
    parser.add_option("-t", "--target", dest='target',
                      action="store", type="float", default=None,
                      help="report only results near the target")
    parser.add_option("--tolerance", dest='tolerance',
                      action="store", type="float", default=TOLERANCE,
                      help="max distance from the target [default: %default]")
    parser.add_option("-w", "--workers", dest='num_workers',
                      action="store", type="int", default=1,
                      help="number of worker processes [default: %default]")
    parser.add_option("-l", "--limit", dest='limit',
                      action="store", type="int", default=None,
                      help="stop after reporting LIMIT expressions")
    parser.add_option("-c", "--combinations", dest='combinations',
                      action="store_true", default=False,
                      help="print the number of expressions to try and exit")
    parser.add_option("-v", "--verbose", dest='verbose',
                      action="store_true", default=False,
                      help="print per-shape timing on stderr")
    (options, args) = parser.parse_args(argv)

    if len(args) > 1:
        parser.error('too many arguments')
    target = options.target
    if args:
        if target is not None:
            parser.error('target is given twice')
        try:
            target = float(args[0])
        except ValueError:
            parser.error('invalid target: %s' % args[0])

    if (options.digit is None) != (options.count is None):
        parser.error('--digit and --count must be used together')
    if options.digit is not None:
        if options.digit <= 0 or options.count <= 0:
            parser.error('--digit and --count must be positive')
        nums = [options.digit] * options.count
    else:
        if options.max_num < 0:
            parser.error('--max_num must not be negative')
        nums = list(range(1, options.max_num + 1))
    if options.reverse:
        nums.reverse()

    if options.combinations:
        print(count_combinations(len(nums), len(DEFAULT_CATALOG.binary())))
        return 0

    solve(nums, target, options.tolerance, options.num_workers,
          options.limit, options.verbose)
    return 0

if __name__ == '__main__':
    sys.exit(main())
