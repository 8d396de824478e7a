import logging
from time import perf_counter

import pandas as pd

from rptree import StoppingConfig, aggregate_observations, load_table, rpart

logging.basicConfig(level=logging.INFO)

df = load_table("titanic.csv")
feats = ["pclass", "sex", "age"]

# one weighted row per distinct passenger profile
df["pclass"] = df["pclass"].astype(str)
df["age"] = df["age"].apply(lambda a: "unknown" if pd.isna(a) else ("child" if a < 18 else "adult"))
agg = aggregate_observations(df[feats + ["survived"]], feats + ["survived"], weight_name="n")

t0 = perf_counter()
tree = rpart("survived ~ .", agg, weights="n", method="class",
             control=StoppingConfig(min_split=20, cp=0.01), xval=10, random_state=42)
print(f"fit: {perf_counter()-t0:.3f} s")

tree.print_tree()
for row in tree.cptable:
    print(f"cp={row.cp:.4f} nsplit={row.nsplit} rel_error={row.rel_error:.4f} "
          f"xerror={row.xerror:.4f} xstd={row.xstd:.4f}")
try:
    tree.export_graphviz("titanic_tree", format="dot")
except RuntimeError as e:
    print(f"Skipping Graphviz export: {e}")
