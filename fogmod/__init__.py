"""Fog and edge application modeling using `SimPy`__.

__ https://simpy.readthedocs.io/en/latest/contents.html

The `fogmod` package models data-processing applications as directed
dataflow graphs of modules, places those modules onto a tree of
heterogeneous compute devices (edge gateways up to a cloud root), and
measures the end-to-end latency of designated control loops as tuples flow
through the placed topology on the :mod:`simpy` discrete-event kernel.

Topology
========

An :class:`~fogmod.application.Application` owns modules, edges carrying
tuple types between them, selectivity rules relating each module's input
and output tuple types, and control loops naming the paths whose latency is
tracked. Applications are validated before anything is placed or routed.

Devices
=======

A :class:`~fogmod.hierarchy.DeviceHierarchy` is a tree of
:class:`~fogmod.hierarchy.Device` nodes with processing and memory
capacity, and with latency and bandwidth on each link to the parent.
Sensors and actuators attach to gateway devices.

Placement
=========

A :class:`~fogmod.placement.PlacementPolicy` maps every module of an
application to exactly one device, either from an explicit
:class:`~fogmod.placement.ModuleMapping` or with the edge-ward heuristic
that keeps processing close to the data source while capacity allows.
Placement is resolved once, before the simulation starts.

Simulation
==========

A model's top-level component subclasses
:class:`~fogmod.controller.Controller`, builds its hierarchy and submits
applications. :func:`~fogmod.simulation.simulate` then initializes,
elaborates and runs the model, and returns a result dict with loop delays,
tuple CPU times, network usage and unrouted-tuple counts gathered by the
run's :class:`~fogmod.tracker.LatencyTracker` and
:class:`~fogmod.router.TupleRouter`.

Monitoring
==========

Logging and VCD waveform tracing are configured through the ``sim.log.*``
and ``sim.vcd.*`` configuration keys; see :mod:`fogmod.tracer`.

"""

__all__ = ()
