"""Test package for the Quant Prep mental-math trainer.

Core modules (question generation, the session controller, the scheduler and
the history stores) are tested headlessly with a fake clock. The pygame front
end is smoke-tested with SDL's dummy video driver so no real window opens. To
run these tests, execute ``pytest`` from the project root.
"""
