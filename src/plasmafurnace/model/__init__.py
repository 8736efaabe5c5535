"""
The MODEL layer contains pure data structures: configuration records, the
material library, boundary conditions and results.
It has NO knowledge of how the equations are solved.
"""
