import unittest
import random

from routewise.models import Coordinates, OptimizationOptions, TripDestination
from routewise.planner import RouteAssembler
from routewise.routing import compute_haversine_matrix
from routewise.optimisation import nearest_neighbor, two_opt


class TestSimulation(unittest.TestCase):
    def test_random_cases(self):
        # Perform a handful of random simulations to verify that the
        # pipeline functions end-to-end without raising exceptions.
        assembler = RouteAssembler()
        for _ in range(10):
            n = random.randint(3, 12)
            destinations = []
            for i in range(n):
                # random coordinates around central Europe
                lat = 45.0 + random.random() * 8.0
                lng = 2.0 + random.random() * 14.0
                destinations.append(TripDestination(id=f"city-{i}", coordinates=Coordinates(lat, lng)))
            options = OptimizationOptions(
                optimize_for=random.choice(["distance", "time", "cost", "scenic"]),
                include_return=random.random() < 0.5,
            )
            route = assembler.assemble(destinations, options)
            # Ensure the route covers all stops exactly once
            self.assertEqual(sorted(d.id for d in route.ordered_destinations), sorted(d.id for d in destinations))
            self.assertEqual(len(route.legs), n if options.include_return else n - 1)

    def test_heuristics_visit_everything(self):
        for _ in range(10):
            n = random.randint(9, 30)
            coords = [(35.6 + random.random() * 0.2, 139.6 + random.random() * 0.2) for _ in range(n)]
            dist_matrix = compute_haversine_matrix(coords)
            route = nearest_neighbor(dist_matrix, start=0)
            self.assertEqual(sorted(route), list(range(n)))
            route = two_opt(route, dist_matrix)
            self.assertEqual(sorted(route), list(range(n)))
            self.assertEqual(route[0], 0)


if __name__ == "__main__":
    unittest.main()
