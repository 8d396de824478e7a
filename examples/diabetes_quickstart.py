import pandas as pd
from time import perf_counter
from rptree import RPartRegressor, select_cp

df = pd.read_csv("diabetes.csv")
y = df["target"].values
Xdf = df.drop(columns=["target"])
feats = list(Xdf.columns)

reg = RPartRegressor(min_split=30, min_bucket=10, cp=0.001, xval=10,
                     feature_names=feats, random_state=42)

t0 = perf_counter(); reg.fit(Xdf, y); print(f"fit: {perf_counter()-t0:.3f} s")
best = select_cp(reg.cptable_, rule="1se")
print(f"1-SE cp: {best:.4f}")
reg.prune(best)
try:
    reg.export_graphviz("diabetes_tree", format="dot")
except RuntimeError as e:
    print(f"Skipping Graphviz export: {e}")
reg.print_tree()
